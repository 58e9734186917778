"""
Pydantic models for everything the indexer reads, derives and persists.
"""
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from colony_indexer.config.indexer_settings import ZERO_ADDRESS
from colony_indexer.utils.addresses import parse_block_number


# ==================
# Chain / cache level entities
# ==================

class Token(BaseModel):
    """ERC20 (or native currency) token. Immutable once observed."""
    address: str
    name: str
    symbol: str
    decimals: int = Field(ge=0, le=255)


NATIVE_TOKEN = Token(
    address=ZERO_ADDRESS,
    name="xDAI Token",
    symbol="xDAI",
    decimals=18,
)


class MetadataBlob(BaseModel):
    """Decoded content-addressed JSON blob."""
    content_hash: str
    data: Dict[str, Any]


class UserProfile(BaseModel):
    """Profile server user, cached as a slowly changing dimension."""
    address: str
    id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_hash: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    token_addresses: List[str] = Field(default_factory=list)
    colony_addresses: List[str] = Field(default_factory=list)

    @classmethod
    def from_server(cls, address: str, user: Dict[str, Any]) -> "UserProfile":
        profile = user.get("profile") or {}
        return cls(
            address=address,
            id=user.get("id"),
            username=profile.get("username"),
            display_name=profile.get("displayName"),
            bio=profile.get("bio"),
            avatar_hash=profile.get("avatarHash"),
            location=profile.get("location"),
            website=profile.get("website"),
            token_addresses=list(user.get("tokenAddresses") or []),
            colony_addresses=list(user.get("colonyAddresses") or []),
        )


class ColonyClientInfo(BaseModel):
    """What the chain tells us about one colony."""
    chain_id: int
    address: str
    token_address: str
    version: int
    domain_count: int = 0


class DomainResolution(BaseModel):
    skill_id: int
    funding_pot_id: int


# ==================
# Subgraph records
# ==================

def _transaction_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    transaction = record.get("transaction") or {}
    block = transaction.get("block") or {}
    timestamp = block.get("timestamp", record.get("timestamp"))
    return {
        "transaction_hash": transaction.get("hash") or transaction.get("id") or "",
        "block_number": parse_block_number(block.get("number", block.get("id"))) or 0,
        "block_timestamp": int(timestamp or 0),
    }


class RawEvent(BaseModel):
    """One event row as served by the subgraph."""
    transaction_hash: str
    block_number: int = 0
    block_timestamp: int = 0
    contract_address: Optional[str] = None
    event_signature: str
    args_json: str = "{}"

    @property
    def args(self) -> Dict[str, Any]:
        try:
            parsed = json.loads(self.args_json or "{}")
        except (TypeError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    @classmethod
    def from_subgraph(cls, record: Dict[str, Any]) -> "RawEvent":
        args = record.get("args")
        if not isinstance(args, str):
            args = json.dumps(args or {})
        return cls(
            contract_address=record.get("address"),
            event_signature=record.get("name") or "",
            args_json=args,
            **_transaction_fields(record),
        )


class OneTxPayment(BaseModel):
    """Payment-shaped record from the one-transaction-payment extension."""
    transaction_hash: str
    block_number: int = 0
    block_timestamp: int = 0
    agent: Optional[str] = None
    recipient: Optional[str] = None
    domain_id: Optional[int] = None
    token_address: Optional[str] = None
    amount: Optional[str] = None

    @classmethod
    def from_subgraph(cls, record: Dict[str, Any]) -> "OneTxPayment":
        payment = record.get("payment") or {}
        domain = payment.get("domain") or {}
        payouts = (payment.get("fundingPot") or {}).get("fundingPotPayouts") or []
        first_payout = payouts[0] if payouts else {}
        token = first_payout.get("token") or {}
        domain_id = domain.get("ethDomainId")
        return cls(
            agent=record.get("agent"),
            recipient=payment.get("recipient"),
            domain_id=int(domain_id) if domain_id is not None else None,
            token_address=token.get("address") or token.get("id"),
            amount=first_payout.get("amount"),
            **_transaction_fields(record),
        )


class Motion(BaseModel):
    id: str
    colony_address: str
    transaction_hash: Optional[str] = None
    block_timestamp: int = 0
    domain_id: Optional[int] = None
    extension_address: Optional[str] = None
    agent: Optional[str] = None
    action: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def from_subgraph(cls, colony_address: str, record: Dict[str, Any]) -> "Motion":
        domain = record.get("domain") or {}
        domain_id = domain.get("domainChainId")
        return cls(
            id=record.get("id") or "",
            colony_address=colony_address,
            transaction_hash=(record.get("transaction") or {}).get("id"),
            block_timestamp=int(record.get("timestamp") or 0),
            domain_id=int(domain_id) if domain_id is not None else None,
            extension_address=record.get("extensionAddress"),
            agent=record.get("agent"),
            action=record.get("action"),
            state=record.get("state"),
        )


class Decision(BaseModel):
    id: str
    colony_address: str
    transaction_hash: Optional[str] = None
    block_timestamp: int = 0
    domain_id: Optional[int] = None
    agent: Optional[str] = None
    annotation_hash: Optional[str] = None

    @classmethod
    def from_subgraph(cls, colony_address: str, record: Dict[str, Any]) -> "Decision":
        domain = record.get("domain") or {}
        domain_id = domain.get("domainChainId")
        return cls(
            id=record.get("id") or "",
            colony_address=colony_address,
            transaction_hash=(record.get("transaction") or {}).get("id"),
            block_timestamp=int(record.get("timestamp") or 0),
            domain_id=int(domain_id) if domain_id is not None else None,
            agent=record.get("agent"),
            annotation_hash=record.get("annotationHash"),
        )


# ==================
# Derived entities
# ==================

class ColonyActionType(str, Enum):
    COLONY_EDIT = "COLONY_EDIT"
    CREATE_DOMAIN = "CREATE_DOMAIN"
    EDIT_DOMAIN = "EDIT_DOMAIN"
    EMIT_DOMAIN_REPUTATION_PENALTY = "EMIT_DOMAIN_REPUTATION_PENALTY"
    EMIT_DOMAIN_REPUTATION_REWARD = "EMIT_DOMAIN_REPUTATION_REWARD"
    GENERIC = "GENERIC"
    MINT_TOKENS = "MINT_TOKENS"
    MOVE_FUNDS = "MOVE_FUNDS"
    PAYMENT = "PAYMENT"
    RECOVERY = "RECOVERY"
    SET_USER_ROLES = "SET_USER_ROLES"
    UNLOCK_TOKEN = "UNLOCK_TOKEN"
    VERSION_UPGRADE = "VERSION_UPGRADE"
    # Reserved, never produced by the classifier
    WRONG_COLONY = "WRONG_COLONY"


# Role 4 (old architecture-subdomain) no longer exists on chain
ROLE_IDS = (0, 1, 2, 3, 5, 6)
ROOT_ROLE = 1
ROOT_DOMAIN_ID = 1


class RoleBitmap(BaseModel):
    """Six independent role slots. ``None`` means unset."""
    role_0: Optional[bool] = None
    role_1: Optional[bool] = None
    role_2: Optional[bool] = None
    role_3: Optional[bool] = None
    role_5: Optional[bool] = None
    role_6: Optional[bool] = None

    def set(self, role: int, set_to: bool) -> bool:
        """Write one slot. Returns False for roles that have no slot."""
        if role not in ROLE_IDS:
            return False
        setattr(self, f"role_{role}", True if set_to else None)
        return True

    def get(self, role: int) -> Optional[bool]:
        if role not in ROLE_IDS:
            return None
        return getattr(self, f"role_{role}")

    def active_roles(self) -> List[int]:
        return [role for role in ROLE_IDS if self.get(role)]


class Action(BaseModel):
    """One logical colony action, i.e. one transaction."""
    transaction_hash: str
    colony_address: str
    block_number: int = 0
    timestamp: int = 0
    type: ColonyActionType = ColonyActionType.GENERIC
    initiator_address: Optional[str] = None
    recipient_address: Optional[str] = None
    from_domain_id: Optional[int] = None
    to_domain_id: Optional[int] = None
    token_address: Optional[str] = None
    amount: Optional[str] = None
    role_changes: Optional[RoleBitmap] = None
    metadata_hash: Optional[str] = None
    new_version: Optional[int] = None

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = self.transaction_hash
        return payload


class PermissionEntry(BaseModel):
    colony_address: str
    domain_id: int
    holder_address: str
    roles: RoleBitmap

    @property
    def id(self) -> str:
        return f"{self.colony_address}_{self.domain_id}_{self.holder_address}_roles"

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = self.id
        return payload


class ColonyMetadata(BaseModel):
    """Decoded colony metadata blob (current or legacy layout)."""
    display_name: Optional[str] = None
    avatar_hash: Optional[str] = None
    token_addresses: List[str] = Field(default_factory=list)
    verified_addresses: List[str] = Field(default_factory=list)
    is_whitelist_activated: bool = False

    @classmethod
    def from_blob(cls, blob: Optional[Dict[str, Any]]) -> "ColonyMetadata":
        if not isinstance(blob, dict):
            return cls()
        data = blob.get("data") if isinstance(blob.get("data"), dict) else blob
        return cls(
            display_name=data.get("colonyDisplayName"),
            avatar_hash=data.get("colonyAvatarHash"),
            token_addresses=list(data.get("colonyTokens") or []),
            verified_addresses=list(data.get("verifiedAddresses") or []),
            is_whitelist_activated=bool(data.get("isWhitelistActivated", False)),
        )


class MetadataChangelogEntry(BaseModel):
    transaction_hash: str
    colony_address: str
    timestamp: int = 0
    new_display_name: Optional[str] = None
    old_display_name: Optional[str] = None
    has_avatar_changed: bool = False
    have_tokens_changed: bool = False
    has_whitelist_changed: bool = False

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = f"{self.colony_address}_{self.transaction_hash}_metadata"
        return payload


class DomainMetadata(BaseModel):
    name: Optional[str] = None
    color: Optional[int] = None
    description: Optional[str] = None

    @classmethod
    def from_blob(cls, blob: Optional[Dict[str, Any]]) -> "DomainMetadata":
        """Newer blobs nest fields under ``data``; older ones keep them top-level."""
        if not isinstance(blob, dict):
            return cls()
        nested = blob.get("data") if isinstance(blob.get("data"), dict) else {}
        return cls(
            name=nested.get("domainName") or blob.get("domainName"),
            color=nested.get("domainColor", blob.get("domainColor")),
            description=nested.get("domainPurpose") or blob.get("domainPurpose"),
        )


class Domain(BaseModel):
    colony_address: str
    domain_chain_id: int
    parent_chain_id: Optional[int] = None
    name: str
    color: Optional[int] = None
    description: Optional[str] = None
    metadata_hash: Optional[str] = None

    @staticmethod
    def fallback_name(domain_chain_id: int) -> str:
        return "Root" if domain_chain_id == ROOT_DOMAIN_ID else f"Domain #{domain_chain_id}"

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = f"{self.colony_address}_{self.domain_chain_id}"
        return payload


class ColonyExtension(BaseModel):
    colony_address: str
    extension_name: str
    extension_hash: str
    address: str
    installed_by: Optional[str] = None
    installed_at: Optional[int] = None
    is_initialized: bool = False

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = self.address
        return payload


class ColonySnapshot(BaseModel):
    """Base record for a colony: chain data merged with subgraph data."""
    chain_id: int
    address: str
    native_token_address: str
    version: int
    domain_count: int = 0
    ens_name: Optional[str] = None
    name: Optional[str] = None
    metadata_hash: Optional[str] = None
    metadata: Optional[ColonyMetadata] = None

    def to_input(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["id"] = self.address
        return payload
