"""
Run loop: validates the target block and sweeps colonies one after another.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from colony_indexer.config.indexer_settings import IndexerSettings
from colony_indexer.exceptions import ConfigurationError, IndexerError
from colony_indexer.pipeline.colony_sync import ColonySync, ColonySyncResult
from colony_indexer.services.chain_client import ChainClient
from colony_indexer.utils.logger import logger, timed_block


@dataclass
class RunSummary:
    end_block: int
    results: Dict[int, ColonySyncResult] = field(default_factory=dict)
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def synced(self) -> List[int]:
        return list(self.results)


class IndexerRunner:
    def __init__(self, settings: IndexerSettings, chain: ChainClient, colony_sync: ColonySync):
        self.settings = settings
        self.chain = chain
        self.colony_sync = colony_sync

    def check_end_block(self) -> int:
        """
        Raises:
            ConfigurationError: If the target block is past the chain head
        """
        head = self.chain.get_block_number()
        if self.settings.end_block > head:
            raise ConfigurationError(
                f"END_BLOCK {self.settings.end_block} is ahead of the chain head ({head})"
            )
        return head

    def colony_ids(self) -> List[int]:
        if self.settings.colony_ids:
            return list(self.settings.colony_ids)
        return list(range(1, self.chain.get_colony_count() + 1))

    def run(self) -> RunSummary:
        """
        Sweep every tracked colony. A failing colony is logged and skipped.

        Raises:
            ConfigurationError: If the target block is past the chain head
            TransportError: If the chain can't be reached at all during setup
        """
        summary = RunSummary(end_block=self.settings.end_block)
        with timed_block("setup"):
            head = self.check_end_block()
            colony_ids = self.colony_ids()
        logger.info(
            "[Runner] Indexing %d colonies up to block %d (head %d)",
            len(colony_ids), self.settings.end_block, head,
        )

        with timed_block("total-runtime"):
            for colony_id in colony_ids:
                try:
                    summary.results[colony_id] = self.colony_sync.sync(colony_id)
                except IndexerError as e:
                    logger.error("[Runner] Colony #%s aborted: %s", colony_id, e.to_dict())
                    summary.failed[colony_id] = e.message

        logger.info("[Runner] Finished: %d synced, %d failed", len(summary.results), len(summary.failed))
        return summary
