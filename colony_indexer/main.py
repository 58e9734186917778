"""
Command line entry point.

    colony-indexer --end-block 123456 --colony 2 --log-level DEBUG
"""
import argparse
import sys
from typing import List, Optional, Tuple

from colony_indexer.config.indexer_settings import IndexerSettings
from colony_indexer.exceptions import ConfigurationError, IndexerError
from colony_indexer.pipeline.colony_sync import ColonySync
from colony_indexer.pipeline.runner import IndexerRunner, RunSummary
from colony_indexer.services.blob_client import BlobClient
from colony_indexer.services.cache_store import build_cache_store
from colony_indexer.services.chain_client import ChainClient
from colony_indexer.services.graph_client import GraphClient
from colony_indexer.services.persistence import PersistenceSink, build_persistence_sink
from colony_indexer.services.profile_client import ProfileServerClient
from colony_indexer.services.resolvers import BlobResolver, TokenResolver, UserResolver
from colony_indexer.utils.logger import logger, set_log_level


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Index colonies into the off-chain store")
    parser.add_argument(
        "--end-block",
        default=None,
        help="Target block height (overrides END_BLOCK)"
    )
    parser.add_argument(
        "--colony",
        type=int,
        action="append",
        default=None,
        help="Colony id to sweep, repeatable (overrides COLONY_IDS)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Record writes in memory instead of persisting them"
    )
    return parser


def build_runner(settings: IndexerSettings, dry_run: bool = False) -> Tuple[IndexerRunner, PersistenceSink]:
    """Wire gateways, caches, resolvers and the sink for one run."""
    timeout = settings.http_timeout_seconds
    chain = ChainClient(settings.network_rpc_endpoint, settings.network_address, timeout=timeout)
    graph = GraphClient(default_endpoint=settings.subgraph_address, timeout=timeout)
    profile_client = ProfileServerClient(
        settings.colony_server_address,
        GraphClient(timeout=timeout),
        private_key=settings.private_key,
        timeout=timeout,
    )
    blob_client = BlobClient(settings.ipfs_gateway, timeout=timeout)

    token_resolver = TokenResolver(chain, build_cache_store(settings.cache_dir, "tokens"))
    blob_resolver = BlobResolver(blob_client, build_cache_store(settings.cache_dir, "ipfs"))
    user_resolver = UserResolver(
        profile_client,
        build_cache_store(settings.cache_dir, "users"),
        token_resolver,
        blob_resolver,
    )
    sink = build_persistence_sink(settings, dry_run=dry_run)

    colony_sync = ColonySync(
        settings=settings,
        chain=chain,
        graph=graph,
        profile_client=profile_client,
        token_resolver=token_resolver,
        blob_resolver=blob_resolver,
        user_resolver=user_resolver,
        sink=sink,
    )
    return IndexerRunner(settings, chain, colony_sync), sink


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    set_log_level(args.log_level)

    try:
        settings = IndexerSettings.from_env(end_block_override=args.end_block)
        if args.colony:
            settings.colony_ids = list(args.colony)
        runner, sink = build_runner(settings, dry_run=args.dry_run)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        return 1

    try:
        summary: RunSummary = runner.run()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        return 1
    except IndexerError as e:
        logger.error("Indexer run failed: %s", e.to_dict())
        return 2
    finally:
        sink.close()

    if summary.failed:
        logger.warning("Colonies that failed this round: %s", sorted(summary.failed))
    return 0


if __name__ == "__main__":
    sys.exit(main())
