"""
Typed colony events.

Subgraph rows carry an event signature string and a JSON blob of arguments.
``parse_event`` turns each row into a ``ColonyEvent`` whose ``kind`` is one of
a closed set of ``EventKind`` values and whose ``payload`` is the matching
pydantic model. Signatures we don't know become ``EventKind.UNKNOWN``.
The kind comes from the signature alone; a row whose args don't validate
keeps its kind with ``payload=None`` and the raw args.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from colony_indexer.data_models.schemas import OneTxPayment, RawEvent, ROOT_DOMAIN_ID
from colony_indexer.utils.logger import logger


class EventKind(str, Enum):
    COLONY_ROLE_SET = "ColonyRoleSet"
    RECOVERY_ROLE_SET = "RecoveryRoleSet"
    TOKENS_MINTED = "TokensMinted"
    DOMAIN_ADDED = "DomainAdded"
    DOMAIN_METADATA = "DomainMetadata"
    TOKEN_UNLOCKED = "TokenUnlocked"
    FUNDS_MOVED = "ColonyFundsMovedBetweenFundingPots"
    COLONY_METADATA = "ColonyMetadata"
    COLONY_UPGRADED = "ColonyUpgraded"
    RECOVERY_MODE_ENTERED = "RecoveryModeEntered"
    REPUTATION_UPDATE = "ArbitraryReputationUpdate"
    ONE_TX_PAYMENT = "OneTxPaymentMade"
    UNKNOWN = "Unknown"


EVENT_SIGNATURES: Dict[str, EventKind] = {
    "ColonyRoleSet(address,address,uint256,uint8,bool)": EventKind.COLONY_ROLE_SET,
    "ColonyRoleSet(address,uint256,uint8,bool)": EventKind.COLONY_ROLE_SET,
    "RecoveryRoleSet(address,bool)": EventKind.RECOVERY_ROLE_SET,
    "TokensMinted(address,address,uint256)": EventKind.TOKENS_MINTED,
    "DomainAdded(address,uint256)": EventKind.DOMAIN_ADDED,
    "DomainAdded(uint256)": EventKind.DOMAIN_ADDED,
    "DomainMetadata(address,uint256,string)": EventKind.DOMAIN_METADATA,
    "TokenUnlocked(address)": EventKind.TOKEN_UNLOCKED,
    "TokenUnlocked()": EventKind.TOKEN_UNLOCKED,
    "ColonyFundsMovedBetweenFundingPots(address,uint256,uint256,uint256,address)": EventKind.FUNDS_MOVED,
    "ColonyMetadata(address,string)": EventKind.COLONY_METADATA,
    "ColonyUpgraded(address,uint256,uint256)": EventKind.COLONY_UPGRADED,
    "ColonyUpgraded(uint256,uint256)": EventKind.COLONY_UPGRADED,
    "RecoveryModeEntered(address)": EventKind.RECOVERY_MODE_ENTERED,
    "ArbitraryReputationUpdate(address,address,uint256,int256)": EventKind.REPUTATION_UPDATE,
    "OneTxPaymentMade(address,uint256,uint256)": EventKind.ONE_TX_PAYMENT,
}

ROLE_SET_KINDS = (EventKind.COLONY_ROLE_SET, EventKind.RECOVERY_ROLE_SET)

# Every signature the action stream query asks the subgraph for
ACTION_EVENT_SIGNATURES = [
    signature for signature, kind in EVENT_SIGNATURES.items() if kind != EventKind.ONE_TX_PAYMENT
]


# ==================
# Payloads
# ==================

class EventPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    agent: Optional[str] = None


def _as_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


class RoleSetPayload(EventPayload):
    user: Optional[str] = None
    domain_id: int = Field(ROOT_DOMAIN_ID, alias="domainId")
    role: int = 0
    set_to: bool = Field(False, alias="setTo")


class RecoveryRoleSetPayload(EventPayload):
    user: Optional[str] = None
    set_to: bool = Field(False, alias="setTo")

    # Recovery role is always role 0 in the root domain
    domain_id: int = ROOT_DOMAIN_ID
    role: int = 0


class TokensMintedPayload(EventPayload):
    who: Optional[str] = None
    amount: str = "0"

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_str(cls, value):
        return _as_str(value)


class DomainPayload(EventPayload):
    domain_id: Optional[int] = Field(None, alias="domainId")
    metadata: Optional[str] = None


class TokenUnlockedPayload(EventPayload):
    pass


class FundsMovedPayload(EventPayload):
    from_pot: int = Field(alias="fromPot")
    to_pot: int = Field(alias="toPot")
    amount: str = "0"
    token: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_str(cls, value):
        return _as_str(value)


class ColonyMetadataPayload(EventPayload):
    metadata: Optional[str] = None


class ColonyUpgradedPayload(EventPayload):
    old_version: Optional[int] = Field(None, alias="oldVersion")
    new_version: Optional[int] = Field(None, alias="newVersion")


class RecoveryModePayload(EventPayload):
    user: Optional[str] = None


class ReputationUpdatePayload(EventPayload):
    user: Optional[str] = None
    skill_id: int = Field(alias="skillId")
    amount: str = "0"

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_str(cls, value):
        return _as_str(value)


class OneTxPaymentPayload(EventPayload):
    recipient: Optional[str] = None
    domain_id: Optional[int] = None
    token_address: Optional[str] = None
    amount: Optional[str] = None


PAYLOAD_TYPES: Dict[EventKind, Type[EventPayload]] = {
    EventKind.COLONY_ROLE_SET: RoleSetPayload,
    EventKind.RECOVERY_ROLE_SET: RecoveryRoleSetPayload,
    EventKind.TOKENS_MINTED: TokensMintedPayload,
    EventKind.DOMAIN_ADDED: DomainPayload,
    EventKind.DOMAIN_METADATA: DomainPayload,
    EventKind.TOKEN_UNLOCKED: TokenUnlockedPayload,
    EventKind.FUNDS_MOVED: FundsMovedPayload,
    EventKind.COLONY_METADATA: ColonyMetadataPayload,
    EventKind.COLONY_UPGRADED: ColonyUpgradedPayload,
    EventKind.RECOVERY_MODE_ENTERED: RecoveryModePayload,
    EventKind.REPUTATION_UPDATE: ReputationUpdatePayload,
}


@dataclass(frozen=True)
class ColonyEvent:
    kind: EventKind
    transaction_hash: str
    block_number: int
    block_timestamp: int
    signature: str
    payload: Optional[EventPayload] = None
    args: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def agent(self) -> Optional[str]:
        if self.payload is not None:
            return self.payload.agent
        agent = self.args.get("agent")
        return agent if isinstance(agent, str) else None

    @property
    def raw_amount(self) -> str:
        """The ``amount`` argument as a decimal string, read from the payload or the raw args."""
        amount = getattr(self.payload, "amount", None)
        if amount is None:
            amount = self.args.get("amount")
        return "" if amount is None else str(amount)

    @property
    def user(self) -> Optional[str]:
        return getattr(self.payload, "user", None)


def parse_event(raw: RawEvent) -> ColonyEvent:
    """Map a raw subgraph row onto the closed event union. Never raises."""
    kind = EVENT_SIGNATURES.get(raw.event_signature, EventKind.UNKNOWN)
    payload = None
    payload_type = PAYLOAD_TYPES.get(kind)
    if payload_type is not None:
        try:
            payload = payload_type.model_validate(raw.args)
        except ValidationError as e:
            logger.warning(
                "[Events] Malformed args for %s in tx %s, keeping it without a payload: %s",
                raw.event_signature, raw.transaction_hash, e.errors()[:1],
            )
    return ColonyEvent(
        kind=kind,
        transaction_hash=raw.transaction_hash,
        block_number=raw.block_number,
        block_timestamp=raw.block_timestamp,
        signature=raw.event_signature,
        payload=payload,
        args=dict(raw.args or {}),
    )


def payment_event(payment: OneTxPayment) -> ColonyEvent:
    """Wrap a one-tx-payment record so it can sit in a transaction group."""
    return ColonyEvent(
        kind=EventKind.ONE_TX_PAYMENT,
        transaction_hash=payment.transaction_hash,
        block_number=payment.block_number,
        block_timestamp=payment.block_timestamp,
        signature="OneTxPaymentMade(address,uint256,uint256)",
        payload=OneTxPaymentPayload(
            agent=payment.agent,
            recipient=payment.recipient,
            domain_id=payment.domain_id,
            token_address=payment.token_address,
            amount=payment.amount,
        ),
    )
