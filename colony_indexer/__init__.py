"""
Off-chain indexer for colony networks.

Walks the colony registry on chain, cross-references the subgraph and the
profile server, resolves metadata blobs through a write-once cache and
persists a normalized action / permission / extension model.
"""

__all__ = [
]
