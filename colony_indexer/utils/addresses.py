from typing import Optional

from web3 import Web3

from colony_indexer.config.indexer_settings import ZERO_ADDRESS


def to_checksum(address: Optional[str]) -> Optional[str]:
    """Checksum an EVM address, returning None for anything that isn't one."""
    if not isinstance(address, str):
        return None
    candidate = address.strip()
    if not Web3.is_address(candidate):
        return None
    return Web3.to_checksum_address(candidate)


def is_zero_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and address.strip().lower() == ZERO_ADDRESS


def parse_block_number(value) -> Optional[int]:
    """Subgraph block ids look like ``block_1234``; pull the number out."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return int(digits) if digits else None
