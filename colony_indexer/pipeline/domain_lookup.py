"""
Resolves funding pots and reputation skills back to colony domain ids.
"""
from typing import Dict, Optional

from colony_indexer.exceptions import TransportError
from colony_indexer.services.chain_client import ChainClient
from colony_indexer.utils.logger import logger


class DomainLookup:
    """Per-colony memo of pot -> domain and skill -> domain answers."""

    def __init__(self, chain: ChainClient, colony_address: str, domain_count: int):
        self.chain = chain
        self.colony_address = colony_address
        self.domain_count = domain_count
        self._pots: Dict[int, Optional[int]] = {}
        self._skills: Optional[Dict[int, int]] = None

    def domain_for_pot(self, pot_id: int) -> Optional[int]:
        if pot_id not in self._pots:
            try:
                self._pots[pot_id] = self.chain.resolve_domain_from_funding_pot(self.colony_address, pot_id)
            except TransportError as e:
                logger.warning("[DomainLookup] Pot %s of %s unresolved: %s", pot_id, self.colony_address, e)
                return None
        return self._pots[pot_id]

    def _build_skill_index(self) -> Dict[int, int]:
        index: Dict[int, int] = {}
        for domain_id in range(1, self.domain_count + 1):
            try:
                resolution = self.chain.resolve_domain(self.colony_address, domain_id)
            except TransportError as e:
                logger.warning("[DomainLookup] Domain %s of %s unresolved: %s", domain_id, self.colony_address, e)
                continue
            index[resolution.skill_id] = domain_id
        logger.debug("[DomainLookup] Indexed %d skills for %s", len(index), self.colony_address)
        return index

    def domain_for_skill(self, skill_id: int) -> Optional[int]:
        if self._skills is None:
            self._skills = self._build_skill_index()
        return self._skills.get(skill_id)
