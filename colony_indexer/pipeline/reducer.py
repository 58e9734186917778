"""
Action reducer.

Turns the time-ordered event streams of one colony into one ``Action`` per
transaction:

1. merge the raw event stream with payment records, ordered by block time
2. group by transaction hash, keeping first-seen order
3. classify each group and pull the type-specific fields out of its events

The reducer never raises. A group that can't be enriched is logged and
dropped, and persistence of one action never affects the next.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from colony_indexer.data_models.events import (
    ColonyEvent,
    EventKind,
    ROLE_SET_KINDS,
    parse_event,
    payment_event,
)
from colony_indexer.data_models.schemas import (
    Action,
    ColonyActionType,
    OneTxPayment,
    RawEvent,
    RoleBitmap,
    ROOT_DOMAIN_ID,
)
from colony_indexer.exceptions import TransportError
from colony_indexer.pipeline.classifier import classify
from colony_indexer.pipeline.domain_lookup import DomainLookup
from colony_indexer.services.chain_client import ChainClient
from colony_indexer.services.persistence import PersistenceSink, safe_upsert
from colony_indexer.utils.addresses import to_checksum
from colony_indexer.utils.logger import logger


@dataclass
class TransactionGroup:
    transaction_hash: str
    events: List[ColonyEvent] = field(default_factory=list)

    @property
    def block_number(self) -> int:
        return self.events[0].block_number if self.events else 0

    @property
    def timestamp(self) -> int:
        return self.events[0].block_timestamp if self.events else 0

    @property
    def agent(self) -> Optional[str]:
        for event in self.events:
            if event.agent:
                return event.agent
        return None

    def first(self, *kinds: EventKind) -> Optional[ColonyEvent]:
        for event in self.events:
            if event.kind in kinds:
                return event
        return None

    def all(self, *kinds: EventKind) -> List[ColonyEvent]:
        return [event for event in self.events if event.kind in kinds]


def merge_streams(raw_events: Sequence[RawEvent], payments: Sequence[OneTxPayment] = ()) -> List[ColonyEvent]:
    """Typed events from both streams, stably sorted by block timestamp."""
    events = [parse_event(raw) for raw in raw_events]
    events.extend(payment_event(payment) for payment in payments)
    return sorted(events, key=lambda event: event.block_timestamp)


def group_by_transaction(events: Sequence[ColonyEvent]) -> List[TransactionGroup]:
    groups: Dict[str, TransactionGroup] = {}
    for event in events:
        group = groups.get(event.transaction_hash)
        if group is None:
            group = groups[event.transaction_hash] = TransactionGroup(event.transaction_hash)
        group.events.append(event)
    # dicts keep insertion order, so groups stay in first-seen order
    return list(groups.values())


def _amount_is_zero(amount: Optional[str]) -> bool:
    try:
        return int(amount or "0") == 0
    except (TypeError, ValueError):
        return False


class ActionReducer:
    """
    Builds ``Action`` records for one colony.

    Args:
        colony_address: Checksummed colony address
        native_token_address: The colony's own token
        chain: Used for transaction-sender fallbacks
        domain_lookup: Pot and skill resolution for the colony
    """

    def __init__(
        self,
        colony_address: str,
        native_token_address: str,
        chain: ChainClient,
        domain_lookup: DomainLookup,
    ):
        self.colony_address = colony_address
        self.native_token_address = native_token_address
        self.chain = chain
        self.domain_lookup = domain_lookup
        self._enrichers: Dict[ColonyActionType, Callable[[TransactionGroup, Action], Optional[Action]]] = {
            ColonyActionType.MINT_TOKENS: self._mint_tokens,
            ColonyActionType.SET_USER_ROLES: self._set_user_roles,
            ColonyActionType.PAYMENT: self._payment,
            ColonyActionType.CREATE_DOMAIN: self._domain,
            ColonyActionType.EDIT_DOMAIN: self._domain,
            ColonyActionType.MOVE_FUNDS: self._move_funds,
            ColonyActionType.EMIT_DOMAIN_REPUTATION_PENALTY: self._reputation,
            ColonyActionType.EMIT_DOMAIN_REPUTATION_REWARD: self._reputation,
            ColonyActionType.UNLOCK_TOKEN: self._unlock_token,
            ColonyActionType.VERSION_UPGRADE: self._version_upgrade,
            ColonyActionType.COLONY_EDIT: self._colony_edit,
            ColonyActionType.RECOVERY: self._recovery,
            ColonyActionType.GENERIC: self._generic,
        }

    # ==================
    # Initiator helpers
    # ==================

    def _sender(self, transaction_hash: str) -> Optional[str]:
        try:
            return self.chain.get_transaction_receipt(transaction_hash)["from"]
        except TransportError as e:
            logger.warning("[Reducer] No sender for %s: %s", transaction_hash, e)
            return None

    def _initiator(self, group: TransactionGroup, event: Optional[ColonyEvent] = None) -> Optional[str]:
        """Event agent, then any agent in the group, then the transaction sender."""
        agent = (event.agent if event is not None else None) or group.agent
        if agent:
            return to_checksum(agent) or agent
        return self._sender(group.transaction_hash)

    @staticmethod
    def _with_payload(group: TransactionGroup, kind: EventKind) -> Optional[ColonyEvent]:
        """First event of ``kind``, or None (logged) when its args didn't validate."""
        event = group.first(kind)
        if event is None or event.payload is None:
            logger.warning(
                "[Reducer] Skipping %s in %s, event args are incomplete",
                kind.value, group.transaction_hash,
            )
            return None
        return event

    # ==================
    # Enrichment per type
    # ==================

    def _mint_tokens(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.TOKENS_MINTED)
        if event is None:
            return None
        if _amount_is_zero(event.payload.amount):
            logger.debug("[Reducer] Skipping zero mint in %s", group.transaction_hash)
            return None
        action.initiator_address = self._initiator(group, event)
        action.recipient_address = to_checksum(event.payload.who)
        action.amount = event.payload.amount
        action.token_address = self.native_token_address
        return action

    def _set_user_roles(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        role_events = [e for e in group.all(*ROLE_SET_KINDS) if e.payload is not None]
        if not role_events:
            logger.warning("[Reducer] Skipping role change in %s, event args are incomplete", group.transaction_hash)
            return None
        event = next((e for e in role_events if e.user), role_events[0])
        roles = RoleBitmap()
        for role_event in role_events:
            roles.set(role_event.payload.role, role_event.payload.set_to)
        action.initiator_address = self._initiator(group, event)
        action.recipient_address = to_checksum(event.user)
        action.from_domain_id = event.payload.domain_id or ROOT_DOMAIN_ID
        action.role_changes = roles
        return action

    def _payment(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        payload = group.first(EventKind.ONE_TX_PAYMENT).payload
        action.initiator_address = self._initiator(group, group.first(EventKind.ONE_TX_PAYMENT))
        action.recipient_address = to_checksum(payload.recipient)
        action.from_domain_id = payload.domain_id
        action.token_address = to_checksum(payload.token_address)
        action.amount = payload.amount
        return action

    def _domain(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        added = group.first(EventKind.DOMAIN_ADDED)
        metadata = group.first(EventKind.DOMAIN_METADATA)
        if all(event is None or event.payload is None for event in (added, metadata)):
            logger.warning("[Reducer] Skipping domain change in %s, event args are incomplete", group.transaction_hash)
            return None
        domain_id = None
        for event in (added, metadata):
            if event is not None and event.payload is not None and event.payload.domain_id is not None:
                domain_id = event.payload.domain_id
                break
        if action.type == ColonyActionType.EDIT_DOMAIN and domain_id == ROOT_DOMAIN_ID:
            logger.debug("[Reducer] Ignoring root domain edit in %s", group.transaction_hash)
            return None
        action.initiator_address = self._initiator(group, added or metadata)
        action.from_domain_id = domain_id
        action.metadata_hash = getattr(metadata.payload, "metadata", None) if metadata is not None else None
        return action

    def _move_funds(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.FUNDS_MOVED)
        if event is None:
            return None
        from_domain = self.domain_lookup.domain_for_pot(event.payload.from_pot)
        to_domain = self.domain_lookup.domain_for_pot(event.payload.to_pot)
        if from_domain is None or to_domain is None:
            logger.warning(
                "[Reducer] Skipping funds move in %s, pots %s -> %s unresolved",
                group.transaction_hash, event.payload.from_pot, event.payload.to_pot,
            )
            return None
        action.initiator_address = self._initiator(group, event)
        action.from_domain_id = from_domain
        action.to_domain_id = to_domain
        action.token_address = to_checksum(event.payload.token)
        action.amount = event.payload.amount
        return action

    def _reputation(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.REPUTATION_UPDATE)
        if event is None:
            return None
        domain_id = self.domain_lookup.domain_for_skill(event.payload.skill_id)
        if domain_id is None:
            logger.warning(
                "[Reducer] Skipping reputation update in %s, skill %s has no domain",
                group.transaction_hash, event.payload.skill_id,
            )
            return None
        action.initiator_address = self._initiator(group, event)
        action.recipient_address = to_checksum(event.payload.user)
        action.from_domain_id = domain_id
        action.amount = event.payload.amount
        return action

    def _unlock_token(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        action.initiator_address = self._initiator(group, group.first(EventKind.TOKEN_UNLOCKED))
        action.token_address = self.native_token_address
        return action

    def _version_upgrade(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.COLONY_UPGRADED)
        if event is None:
            return None
        action.initiator_address = self._initiator(group, event)
        action.new_version = event.payload.new_version
        return action

    def _colony_edit(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.COLONY_METADATA)
        if event is None:
            return None
        action.initiator_address = self._initiator(group, event)
        action.metadata_hash = event.payload.metadata
        return action

    def _recovery(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        event = self._with_payload(group, EventKind.RECOVERY_MODE_ENTERED)
        if event is None:
            return None
        action.initiator_address = to_checksum(event.payload.user)
        return action

    def _generic(self, group: TransactionGroup, action: Action) -> Optional[Action]:
        action.initiator_address = to_checksum(group.agent)
        return action

    # ==================
    # Entry points
    # ==================

    def reduce_group(self, group: TransactionGroup) -> Optional[Action]:
        action = Action(
            transaction_hash=group.transaction_hash,
            colony_address=self.colony_address,
            block_number=group.block_number,
            timestamp=group.timestamp,
            type=classify(group.events),
        )
        try:
            return self._enrichers[action.type](group, action)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(
                "[Reducer] Could not build %s action for %s: %s",
                action.type.value, group.transaction_hash, e,
            )
            return None

    def reduce(self, events: Sequence[ColonyEvent]) -> List[Action]:
        actions = []
        for group in group_by_transaction(events):
            action = self.reduce_group(group)
            if action is not None:
                actions.append(action)
        logger.info("[Reducer] %s: %d events -> %d actions", self.colony_address, len(events), len(actions))
        return actions


def persist_actions(actions: Sequence[Action], sink: PersistenceSink) -> int:
    """One upsert per action; returns how many succeeded."""
    return sum(1 for action in actions if safe_upsert(sink, "ColonyAction", action.to_input()))
