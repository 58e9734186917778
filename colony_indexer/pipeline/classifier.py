"""
Maps the events of one transaction onto a colony action type.
"""
from typing import Optional, Sequence

from colony_indexer.data_models.events import ColonyEvent, EventKind
from colony_indexer.data_models.schemas import ColonyActionType

_DIRECT_TYPES = {
    EventKind.COLONY_ROLE_SET: ColonyActionType.SET_USER_ROLES,
    EventKind.RECOVERY_ROLE_SET: ColonyActionType.SET_USER_ROLES,
    EventKind.TOKENS_MINTED: ColonyActionType.MINT_TOKENS,
    EventKind.DOMAIN_ADDED: ColonyActionType.CREATE_DOMAIN,
    EventKind.TOKEN_UNLOCKED: ColonyActionType.UNLOCK_TOKEN,
    EventKind.FUNDS_MOVED: ColonyActionType.MOVE_FUNDS,
    EventKind.COLONY_METADATA: ColonyActionType.COLONY_EDIT,
    EventKind.COLONY_UPGRADED: ColonyActionType.VERSION_UPGRADE,
    EventKind.RECOVERY_MODE_ENTERED: ColonyActionType.RECOVERY,
}


def _type_for(event: ColonyEvent, events: Sequence[ColonyEvent]) -> Optional[ColonyActionType]:
    if event.kind in _DIRECT_TYPES:
        return _DIRECT_TYPES[event.kind]
    if event.kind == EventKind.DOMAIN_METADATA:
        if any(other.kind == EventKind.DOMAIN_ADDED for other in events):
            return ColonyActionType.CREATE_DOMAIN
        return ColonyActionType.EDIT_DOMAIN
    if event.kind == EventKind.REPUTATION_UPDATE:
        # amounts are serialized big ints; the sign is the leading character
        if event.raw_amount.startswith("-"):
            return ColonyActionType.EMIT_DOMAIN_REPUTATION_PENALTY
        return ColonyActionType.EMIT_DOMAIN_REPUTATION_REWARD
    return None


def classify(events: Sequence[ColonyEvent]) -> ColonyActionType:
    """
    Type of the action made up of ``events``.

    Events are scanned in stream order and the first one of a known kind
    decides. Payment records only count when no event matched. Never raises.
    """
    for event in events:
        action_type = _type_for(event, events)
        if action_type is not None:
            return action_type
    if any(event.kind == EventKind.ONE_TX_PAYMENT for event in events):
        return ColonyActionType.PAYMENT
    return ColonyActionType.GENERIC
