"""
Indexer configuration.

All settings are read once at startup into an ``IndexerSettings`` instance
which is then handed to every component. Nothing below the CLI reads the
environment directly.
"""
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_utils import ValidationError as KeyValidationError
from web3 import Web3

from colony_indexer.exceptions import ConfigurationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PERSISTENCE_BACKENDS = ("memory", "postgres", "graphql")


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a valid integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_setting(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def parse_end_block(raw) -> int:
    """Parse the target block height. Missing or malformed values are fatal."""
    if raw is None or str(raw).strip() == "":
        raise ConfigurationError("END_BLOCK is required (set it in the environment or pass --end-block)")
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"END_BLOCK must be a valid integer, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"END_BLOCK must not be negative, got {value}")
    return value


def _parse_colony_ids(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ConfigurationError(f"COLONY_IDS must be a comma separated list of integers, got {raw!r}")
    return ids


@dataclass
class IndexerSettings:
    """Explicit configuration for one indexer run."""
    end_block: int
    network_rpc_endpoint: str = "http://localhost:8545"
    network_address: str = ZERO_ADDRESS
    subgraph_address: str = "http://localhost:8000/subgraphs/name/joinColony/subgraph"
    colony_server_address: str = "http://localhost:3000"
    private_key: Optional[str] = None
    ipfs_gateway: str = "https://ipfs.io/ipfs"
    persistence_backend: str = "memory"
    appsync_address: Optional[str] = None
    appsync_key: Optional[str] = None
    cache_dir: Optional[str] = ".cache"
    page_size: int = 100
    throttle_seconds: float = 0.5
    prefetch_workers: int = 4
    http_timeout_seconds: float = 30.0
    colony_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        if self.persistence_backend not in PERSISTENCE_BACKENDS:
            raise ConfigurationError(
                f"PERSISTENCE_BACKEND must be one of {', '.join(PERSISTENCE_BACKENDS)}, "
                f"got {self.persistence_backend!r}"
            )
        if self.persistence_backend == "graphql" and not self.appsync_address:
            raise ConfigurationError("AWS_APPSYNC_ADDRESS is required for the graphql persistence backend")
        if self.page_size < 1:
            raise ConfigurationError("PAGE_SIZE must be at least 1")
        if self.prefetch_workers < 1:
            raise ConfigurationError("PREFETCH_WORKERS must be at least 1")
        if not Web3.is_address(self.network_address):
            raise ConfigurationError(f"NETWORK_ADDRESS is not a valid address, got {self.network_address!r}")
        if self.private_key:
            try:
                Account.from_key(self.private_key)
            except (ValueError, TypeError, KeyValidationError) as e:
                # the key itself never goes into the message
                raise ConfigurationError("PRIVKEY is not a valid private key") from e

    @property
    def appsync_graphql(self) -> Optional[str]:
        if not self.appsync_address:
            return None
        return f"{self.appsync_address.rstrip('/')}/graphql"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        end_block_override=None,
        load_dotenv_file: bool = True,
    ) -> "IndexerSettings":
        """Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to ``os.environ``)
            end_block_override: Value from the CLI, takes precedence over END_BLOCK
            load_dotenv_file: Load a ``.env`` file into the process environment first

        Raises:
            ConfigurationError: If a required value is missing or malformed
        """
        if env is None:
            if load_dotenv_file:
                load_dotenv()
            env = os.environ

        raw_end_block = end_block_override if end_block_override is not None else env.get("END_BLOCK")
        cache_dir = env.get("CACHE_DIR", ".cache")

        return cls(
            end_block=parse_end_block(raw_end_block),
            network_rpc_endpoint=env.get("NETWORK_RPC_ENDPOINT") or "http://localhost:8545",
            network_address=env.get("NETWORK_ADDRESS") or ZERO_ADDRESS,
            subgraph_address=env.get("SUBGRAPH_ADDRESS")
            or "http://localhost:8000/subgraphs/name/joinColony/subgraph",
            colony_server_address=env.get("COLONYSERVER_ADDRESS") or "http://localhost:3000",
            private_key=env.get("PRIVKEY") or None,
            ipfs_gateway=(env.get("IPFS_GATEWAY") or "https://ipfs.io/ipfs").rstrip("/"),
            persistence_backend=(env.get("PERSISTENCE_BACKEND") or "memory").strip().lower(),
            appsync_address=env.get("AWS_APPSYNC_ADDRESS") or None,
            appsync_key=env.get("AWS_APPSYNC_KEY") or None,
            cache_dir=cache_dir or None,
            page_size=_int_setting(env, "PAGE_SIZE", 100, minimum=1),
            throttle_seconds=_float_setting(env, "THROTTLE_SECONDS", 0.5),
            prefetch_workers=_int_setting(env, "PREFETCH_WORKERS", 4, minimum=1),
            http_timeout_seconds=_float_setting(env, "HTTP_TIMEOUT_SECONDS", 30.0),
            colony_ids=_parse_colony_ids(env.get("COLONY_IDS")),
        )
