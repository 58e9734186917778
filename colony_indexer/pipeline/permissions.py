"""
Folds role-set history into the current per-holder, per-domain role bitmap.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from colony_indexer.data_models.events import ColonyEvent, ROLE_SET_KINDS
from colony_indexer.data_models.schemas import PermissionEntry, RoleBitmap, ROOT_DOMAIN_ID, ROOT_ROLE
from colony_indexer.utils.addresses import to_checksum
from colony_indexer.utils.logger import logger


@dataclass
class PermissionSnapshot:
    colony_address: str
    holders: Dict[str, Dict[int, RoleBitmap]] = field(default_factory=dict)

    def roles_for(self, holder: str, domain_id: int = ROOT_DOMAIN_ID) -> RoleBitmap:
        return self.holders.get(holder, {}).get(domain_id, RoleBitmap())

    def entries(self) -> List[PermissionEntry]:
        return [
            PermissionEntry(
                colony_address=self.colony_address,
                domain_id=domain_id,
                holder_address=holder,
                roles=roles,
            )
            for holder, domains in self.holders.items()
            for domain_id, roles in domains.items()
        ]

    def implicit_token_holders(self) -> List[str]:
        """Holders with root in the root domain count as holders of the colony token."""
        return [
            holder for holder, domains in self.holders.items()
            if domains.get(ROOT_DOMAIN_ID, RoleBitmap()).get(ROOT_ROLE)
        ]


def aggregate_permissions(colony_address: str, events: Sequence[ColonyEvent]) -> PermissionSnapshot:
    """
    Replay role-set events in timestamp order, last write wins.

    Each event sets or clears exactly one (holder, domain, role) slot.
    Roles without a slot are ignored.
    """
    snapshot = PermissionSnapshot(colony_address=colony_address)
    ordered = sorted(
        (event for event in events if event.kind in ROLE_SET_KINDS),
        key=lambda event: event.block_timestamp,
    )
    for event in ordered:
        holder = to_checksum(event.user)
        if holder is None:
            logger.debug("[Permissions] Role event without holder in %s", event.transaction_hash)
            continue
        payload = event.payload
        domain_id = payload.domain_id or ROOT_DOMAIN_ID
        roles = snapshot.holders.setdefault(holder, {}).setdefault(domain_id, RoleBitmap())
        if not roles.set(payload.role, payload.set_to):
            logger.debug("[Permissions] Ignoring unknown role %s in %s", payload.role, event.transaction_hash)
    return snapshot
