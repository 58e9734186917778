"""
One colony sweep.

Pulls the chain view of a colony, the subgraph view up to the target block,
resolves metadata blobs through the caches, reduces the event streams into
actions and permissions, and hands everything to the persistence sink.
"""
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from colony_indexer.config.indexer_settings import IndexerSettings
from colony_indexer.data_models.events import ACTION_EVENT_SIGNATURES
from colony_indexer.data_models.schemas import (
    Action,
    ColonyClientInfo,
    ColonyExtension,
    ColonyMetadata,
    ColonySnapshot,
    Decision,
    Domain,
    DomainMetadata,
    MetadataChangelogEntry,
    Motion,
    OneTxPayment,
    RawEvent,
    Token,
    UserProfile,
)
from colony_indexer.exceptions import PaginationError, TransportError
from colony_indexer.pipeline.changelog import build_metadata_changelog
from colony_indexer.pipeline.domain_lookup import DomainLookup
from colony_indexer.pipeline.paginator import graph_page_fetcher, paginate
from colony_indexer.pipeline.permissions import PermissionSnapshot, aggregate_permissions
from colony_indexer.pipeline.reducer import ActionReducer, merge_streams, persist_actions
from colony_indexer.queries.subgraph import (
    GET_COLONY,
    GET_COLONY_EVENTS,
    GET_DECISIONS,
    GET_EXTENSION_EVENTS,
    GET_MOTIONS,
    GET_ONE_TX_PAYMENTS,
)
from colony_indexer.services.chain_client import KNOWN_EXTENSIONS, ChainClient, extension_hash
from colony_indexer.services.graph_client import GraphClient
from colony_indexer.services.persistence import PersistenceSink, safe_upsert
from colony_indexer.services.profile_client import ProfileServerClient
from colony_indexer.services.resolvers import BlobResolver, TokenResolver, UserResolver
from colony_indexer.utils.addresses import is_zero_address, to_checksum
from colony_indexer.utils.logger import logger, timed_block


@dataclass
class ColonySyncResult:
    colony: ColonySnapshot
    native_token: Optional[Token] = None
    tokens: List[Token] = field(default_factory=list)
    domains: List[Domain] = field(default_factory=list)
    extensions: List[ColonyExtension] = field(default_factory=list)
    subscribers: List[UserProfile] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    changelog: List[MetadataChangelogEntry] = field(default_factory=list)
    permissions: Optional[PermissionSnapshot] = None
    # root holders in the root domain, implicitly holding the native token
    token_holders: List[str] = field(default_factory=list)
    motions: List[Motion] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)
    persisted: int = 0


def latest_metadata_hash(record: Dict[str, Any]) -> Optional[str]:
    """Current metadata hash, falling back to the newest history entry."""
    if record.get("metadata"):
        return record["metadata"]
    history = sorted(
        record.get("metadataHistory") or [],
        key=lambda entry: _int_or_none(((entry.get("transaction") or {}).get("block") or {}).get("timestamp")) or 0,
        reverse=True,
    )
    for entry in history:
        if entry.get("metadata"):
            return entry["metadata"]
    return None


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ColonySync:
    """
    Sweeps a single colony.

    Provides:
    - Chain and subgraph snapshots with cached metadata resolution
    - Extension lookups and subscriber prefetch on a bounded worker pool
    - Action, changelog and permission derivation from the event streams
    - Persistence of every derived entity, one record at a time
    """

    def __init__(
        self,
        settings: IndexerSettings,
        chain: ChainClient,
        graph: GraphClient,
        profile_client: ProfileServerClient,
        token_resolver: TokenResolver,
        blob_resolver: BlobResolver,
        user_resolver: UserResolver,
        sink: PersistenceSink,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.chain = chain
        self.graph = graph
        self.profile_client = profile_client
        self.token_resolver = token_resolver
        self.blob_resolver = blob_resolver
        self.user_resolver = user_resolver
        self.sink = sink
        self.sleep = sleep

    @property
    def up_to_block(self) -> int:
        return self.settings.end_block

    # ==================
    # Snapshots
    # ==================

    def fetch_chain_snapshot(self, colony_id: int) -> ColonySnapshot:
        """
        Raises:
            ColonyNotFoundError: If the network has no colony with that id
            TransportError: If the colony contract can't be read
        """
        info: ColonyClientInfo = self.chain.get_colony_client(colony_id)
        try:
            ens_name = self.chain.lookup_registered_ens_domain(info.address)
        except TransportError:
            ens_name = None
        return ColonySnapshot(
            chain_id=info.chain_id,
            address=info.address,
            native_token_address=info.token_address,
            version=info.version,
            domain_count=info.domain_count,
            ens_name=ens_name,
            name=ens_name.split(".")[0] if ens_name else None,
        )

    def fetch_subgraph_snapshot(self, colony_address: str) -> Dict[str, Any]:
        body = self.graph.query(GET_COLONY, {"address": colony_address.lower(), "upToBlock": self.up_to_block})
        if body is None:
            logger.warning("[ColonySync] No subgraph snapshot for %s this round", colony_address)
            return {}
        return body.get("data") or {}

    def resolve_colony_metadata(self, snapshot: ColonySnapshot, subgraph_colony: Dict[str, Any]) -> List[Token]:
        """Attach the decoded metadata blob and resolve the tokens it lists."""
        metadata_hash = latest_metadata_hash(subgraph_colony)
        if not metadata_hash:
            return []
        snapshot.metadata_hash = metadata_hash
        metadata = ColonyMetadata.from_blob(self.blob_resolver.resolve(metadata_hash))
        snapshot.metadata = metadata
        if metadata.avatar_hash:
            self.blob_resolver.resolve(metadata.avatar_hash)
        tokens = []
        for token_address in metadata.token_addresses:
            token = self.token_resolver.resolve(token_address)
            if token is not None:
                tokens.append(token)
        return tokens

    def build_domains(self, colony_address: str, records: List[Dict[str, Any]]) -> List[Domain]:
        domains = []
        for record in records:
            domain_id = _int_or_none(record.get("domainChainId"))
            if domain_id is None:
                continue
            metadata_hash = latest_metadata_hash(record)
            metadata = DomainMetadata.from_blob(self.blob_resolver.resolve(metadata_hash)) if metadata_hash else DomainMetadata()
            domains.append(Domain(
                colony_address=colony_address,
                domain_chain_id=domain_id,
                parent_chain_id=_int_or_none((record.get("parent") or {}).get("domainChainId")),
                name=metadata.name or record.get("name") or Domain.fallback_name(domain_id),
                color=metadata.color,
                description=metadata.description,
                metadata_hash=metadata_hash,
            ))
        return domains

    # ==================
    # Fan-outs
    # ==================

    def _extension(self, colony_address: str, extension_name: str) -> Optional[ColonyExtension]:
        try:
            address = self.chain.get_extension_installation(extension_name, colony_address)
        except TransportError:
            return None
        if address is None:
            return None

        hash_value = extension_hash(extension_name)
        extension = ColonyExtension(
            colony_address=colony_address,
            extension_name=extension_name,
            extension_hash=hash_value,
            address=address,
        )
        body = self.graph.query(GET_EXTENSION_EVENTS, {
            "colonyAddress": colony_address.lower(),
            "extensionAddress": address.lower(),
            "upToBlock": self.up_to_block,
        })
        data = (body or {}).get("data") or {}
        installed = next(
            (
                event for event in data.get("extensionInstalledEvents") or []
                if hash_value.lower() in str(event.get("args") or "").lower()
            ),
            None,
        )
        if installed is not None:
            extension.installed_at = _int_or_none(installed.get("timestamp"))
            transaction_hash = (installed.get("transaction") or {}).get("transactionHash")
            if transaction_hash:
                try:
                    extension.installed_by = self.chain.get_transaction_receipt(transaction_hash)["from"]
                except TransportError:
                    pass
        extension.is_initialized = bool(data.get("extensionInitialisedEvents"))
        return extension

    def fetch_extensions(self, colony_address: str) -> List[ColonyExtension]:
        with ThreadPoolExecutor(max_workers=self.settings.prefetch_workers) as executor:
            results = executor.map(lambda name: self._extension(colony_address, name), KNOWN_EXTENSIONS)
            return [extension for extension in results if extension is not None]

    def _prefetch_subscriber(self, user: Dict[str, Any]) -> Optional[UserProfile]:
        """Cache a subscriber. Bare references without a profile are looked up through the users cache.

        Raises:
            UserNotFoundError: If the server lists a subscriber it has no profile for
        """
        address = (user.get("profile") or {}).get("walletAddress") or user.get("id")
        if not to_checksum(address):
            logger.debug("[ColonySync] Subscriber without a wallet address: %s", user.get("id"))
            return None
        if user.get("profile"):
            return self.user_resolver.remember(address, user)
        try:
            return self.user_resolver.resolve(address)
        except TransportError as e:
            logger.warning("[ColonySync] Profile for subscriber %s unavailable this round: %s", address, e)
            return None

    def fetch_subscribers(self, colony_address: str) -> List[UserProfile]:
        try:
            users = self.profile_client.get_colony_subscribers(colony_address)
        except TransportError as e:
            logger.warning("[ColonySync] No subscribers for %s this round: %s", colony_address, e)
            return []
        if not users:
            return []
        with ThreadPoolExecutor(max_workers=self.settings.prefetch_workers) as executor:
            return [profile for profile in executor.map(self._prefetch_subscriber, users) if profile is not None]

    # ==================
    # Event streams
    # ==================

    def _paginate(self, document: str, collection: str, variables: Dict[str, Any], query_name: str) -> List[Dict[str, Any]]:
        fetch = graph_page_fetcher(self.graph, document, collection, variables, query_name=query_name)
        return paginate(fetch, self.settings.page_size, self.settings.throttle_seconds, sleep=self.sleep)

    def _parse_records(
        self,
        records: List[Dict[str, Any]],
        parse: Callable[[Dict[str, Any]], Any],
        query_name: str,
    ) -> List[Any]:
        """Parse a collected stream. A malformed record fails the stream like a failed page."""
        try:
            return [parse(record) for record in records]
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("[ColonySync] Malformed record in %s: %s", query_name, e)
            raise PaginationError(f"{query_name} returned a malformed record: {e}", query_name=query_name) from e

    def fetch_streams(self, colony_address: str):
        """Raises PaginationError if any page fails or holds a malformed record."""
        variables = {"colonyAddress": colony_address.lower(), "upToBlock": self.up_to_block}
        raw_events = self._parse_records(
            self._paginate(
                GET_COLONY_EVENTS, "events", {**variables, "names": ACTION_EVENT_SIGNATURES}, "SubgraphColonyEvents",
            ),
            RawEvent.from_subgraph,
            "SubgraphColonyEvents",
        )
        payments = self._parse_records(
            self._paginate(GET_ONE_TX_PAYMENTS, "oneTxPayments", variables, "SubgraphOneTxPayments"),
            OneTxPayment.from_subgraph,
            "SubgraphOneTxPayments",
        )
        motions = self._parse_records(
            self._paginate(GET_MOTIONS, "motions", variables, "SubgraphMotions"),
            lambda record: Motion.from_subgraph(colony_address, record),
            "SubgraphMotions",
        )
        decisions = self._parse_records(
            self._paginate(GET_DECISIONS, "decisions", variables, "SubgraphDecisions"),
            lambda record: Decision.from_subgraph(colony_address, record),
            "SubgraphDecisions",
        )
        return raw_events, payments, motions, decisions

    # ==================
    # Persistence
    # ==================

    def _persist_token(self, colony_address: str, token: Token) -> int:
        """Token plus its colony relation. The native chain currency is never stored."""
        if is_zero_address(token.address):
            return 0
        persisted = int(safe_upsert(self.sink, "Token", {**token.model_dump(), "id": token.address}))
        persisted += int(safe_upsert(self.sink, "ColonyTokens", {
            "id": f"{colony_address}_{token.address}",
            "colonyID": colony_address,
            "tokenID": token.address,
        }))
        return persisted

    def persist(self, result: ColonySyncResult) -> int:
        address = result.colony.address
        persisted = int(safe_upsert(self.sink, "Colony", result.colony.to_input()))
        for token in ([result.native_token] if result.native_token else []) + result.tokens:
            persisted += self._persist_token(address, token)
        for domain in result.domains:
            persisted += int(safe_upsert(self.sink, "Domain", domain.to_input()))
        for extension in result.extensions:
            persisted += int(safe_upsert(self.sink, "ColonyExtension", extension.to_input()))
        for profile in result.subscribers:
            persisted += int(safe_upsert(self.sink, "User", {**profile.model_dump(), "id": profile.address}))
            persisted += int(safe_upsert(self.sink, "WatchedColonies", {
                "id": f"{address}_{profile.address}",
                "colonyID": address,
                "userID": profile.address,
            }))
        persisted += persist_actions(result.actions, self.sink)
        for entry in result.changelog:
            persisted += int(safe_upsert(self.sink, "ColonyMetadataChangelog", entry.to_input()))
        if result.permissions is not None:
            for entry in result.permissions.entries():
                persisted += int(safe_upsert(self.sink, "ColonyRole", entry.to_input()))
        for holder in result.token_holders:
            persisted += int(safe_upsert(self.sink, "TokenHolder", {
                "id": f"{result.colony.native_token_address}_{holder}",
                "colonyID": address,
                "tokenID": result.colony.native_token_address,
                "userID": holder,
                "isImplicit": True,
            }))
        for motion in result.motions:
            persisted += int(safe_upsert(self.sink, "Motion", motion.model_dump(mode="json")))
        for decision in result.decisions:
            persisted += int(safe_upsert(self.sink, "Decision", decision.model_dump(mode="json")))
        return persisted

    # ==================
    # Sweep
    # ==================

    def sync(self, colony_id: int) -> ColonySyncResult:
        """
        Sweep one colony up to ``settings.end_block``.

        Raises:
            ColonyNotFoundError: If the colony doesn't exist
            PaginationError: If an event stream can't be read completely
            TransportError: If the chain snapshot can't be read
        """
        with timed_block(f"colony #{colony_id} chain-data"):
            snapshot = self.fetch_chain_snapshot(colony_id)
            result = ColonySyncResult(colony=snapshot)
            result.native_token = self.token_resolver.resolve(snapshot.native_token_address)
        address = snapshot.address
        logger.info("[ColonySync] Colony #%s at %s (%s)", colony_id, address, snapshot.ens_name or "no ENS name")

        with timed_block(f"colony #{colony_id} subgraph-data"):
            subgraph = self.fetch_subgraph_snapshot(address)
            subgraph_colony = subgraph.get("colony") or {}
            if subgraph_colony.get("ensName") and not snapshot.ens_name:
                snapshot.ens_name = subgraph_colony["ensName"]
                snapshot.name = snapshot.ens_name.split(".")[0]

        with timed_block(f"colony #{colony_id} ipfs-data"):
            result.tokens = self.resolve_colony_metadata(snapshot, subgraph_colony)
            result.domains = self.build_domains(address, subgraph.get("domains") or [])

        with timed_block(f"colony #{colony_id} extensions"):
            result.extensions = self.fetch_extensions(address)

        with timed_block(f"colony #{colony_id} subscribers"):
            result.subscribers = self.fetch_subscribers(address)

        with timed_block(f"colony #{colony_id} event-streams"):
            raw_events, payments, result.motions, result.decisions = self.fetch_streams(address)

        with timed_block(f"colony #{colony_id} actions"):
            events = merge_streams(raw_events, payments)
            reducer = ActionReducer(
                colony_address=address,
                native_token_address=snapshot.native_token_address,
                chain=self.chain,
                domain_lookup=DomainLookup(self.chain, address, snapshot.domain_count),
            )
            result.actions = reducer.reduce(events)
            result.changelog = build_metadata_changelog(result.actions, self.blob_resolver)
            result.permissions = aggregate_permissions(address, events)
            result.token_holders = result.permissions.implicit_token_holders()

        with timed_block(f"colony #{colony_id} persistence"):
            result.persisted = self.persist(result)

        logger.info(
            "[ColonySync] Colony #%s done: %d actions, %d domains, %d extensions, %d records persisted",
            colony_id, len(result.actions), len(result.domains), len(result.extensions), result.persisted,
        )
        return result

