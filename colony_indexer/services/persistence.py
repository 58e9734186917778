"""
Persistence sinks.

Every derived entity leaves the pipeline through ``upsert(entity_type, input)``
where ``input`` is a JSON-ready dict carrying an ``id``. Sinks raise
``PersistenceError``; pipeline code goes through ``safe_upsert`` so a single
failed write is logged and never stops the batch.
"""
import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json

from colony_indexer.config.database_config import DatabaseConfig
from colony_indexer.exceptions import PersistenceError
from colony_indexer.queries.mutations import ENTITY_OPERATIONS, build_create_mutation, build_lookup_query
from colony_indexer.services.connection_pool import DatabaseConnectionPool
from colony_indexer.services.graph_client import GraphClient
from colony_indexer.utils.logger import logger


class PersistenceSink(ABC):

    @abstractmethod
    def upsert(self, entity_type: str, input: Dict[str, Any]) -> None:
        """Create or update one entity, keyed on ``input["id"]``."""

    def close(self):
        pass


def _entity_id(entity_type: str, input: Dict[str, Any]) -> str:
    entity_id = input.get("id")
    if not entity_id:
        raise PersistenceError("input has no id", entity_type=entity_type)
    return str(entity_id)


class RecordingPersistenceSink(PersistenceSink):
    """In-memory sink for dry runs and tests.

    ``calls`` keeps every upsert in order; ``records`` holds the latest input
    per (entity_type, id).
    """

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def upsert(self, entity_type: str, input: Dict[str, Any]) -> None:
        entity_id = _entity_id(entity_type, input)
        payload = json.loads(json.dumps(input))
        with self._lock:
            self.calls.append((entity_type, payload))
            self.records[(entity_type, entity_id)] = payload

    def of_type(self, entity_type: str) -> List[Dict[str, Any]]:
        return [input for kind, input in self.calls if kind == entity_type]


class PostgresPersistenceSink(PersistenceSink):
    """Stores entities as JSONB rows keyed on (entity_type, id)."""

    def __init__(self, connection_pool: DatabaseConnectionPool, table: str = "indexed_entities"):
        self.pool = connection_pool
        self.table = table
        self._schema_ready = False

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "PostgresPersistenceSink":
        return cls(DatabaseConnectionPool(config), table=config.table)

    def ensure_schema(self):
        statement = sql.SQL(
            "CREATE TABLE IF NOT EXISTS {table} ("
            " entity_type TEXT NOT NULL,"
            " id TEXT NOT NULL,"
            " payload JSONB NOT NULL,"
            " updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),"
            " PRIMARY KEY (entity_type, id))"
        ).format(table=sql.Identifier(self.table))
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(statement)
        except psycopg2.Error as e:
            logger.error("[PostgresSink] Could not create table %s: %s", self.table, e)
            raise PersistenceError(str(e), entity_type="schema") from e
        self._schema_ready = True

    def upsert(self, entity_type: str, input: Dict[str, Any]) -> None:
        entity_id = _entity_id(entity_type, input)
        if not self._schema_ready:
            self.ensure_schema()
        statement = sql.SQL(
            "INSERT INTO {table} (entity_type, id, payload) VALUES (%s, %s, %s) "
            "ON CONFLICT (entity_type, id) DO UPDATE "
            "SET payload = EXCLUDED.payload, updated_at = now()"
        ).format(table=sql.Identifier(self.table))
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(statement, (entity_type, entity_id, Json(input)))
        except psycopg2.Error as e:
            logger.error("[PostgresSink] Upsert of %s %s failed: %s", entity_type, entity_id, e)
            raise PersistenceError(str(e), entity_type=entity_type) from e

    def close(self):
        self.pool.close()


class GraphQLPersistenceSink(PersistenceSink):
    """
    Writes through create mutations on an AppSync-style GraphQL endpoint.

    Entities are looked up by id first and only created when absent, so
    re-running a sweep doesn't duplicate records.
    """

    def __init__(self, graph_client: GraphClient, endpoint: str, api_key: Optional[str] = None):
        self.graph_client = graph_client
        self.endpoint = endpoint
        self.headers = {"x-api-key": api_key} if api_key else {}

    def _request(self, entity_type: str, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        body = self.graph_client.query(document, variables, endpoint=self.endpoint, headers=self.headers)
        if body is None:
            raise PersistenceError("GraphQL endpoint unreachable", entity_type=entity_type)
        if body.get("errors"):
            raise PersistenceError(str(body["errors"]), entity_type=entity_type)
        return body.get("data") or {}

    def exists(self, entity_type: str, entity_id: str) -> bool:
        lookup_field = ENTITY_OPERATIONS[entity_type][0]
        data = self._request(entity_type, build_lookup_query(entity_type), {"id": entity_id})
        return bool(data.get(lookup_field))

    def upsert(self, entity_type: str, input: Dict[str, Any]) -> None:
        if entity_type not in ENTITY_OPERATIONS:
            raise PersistenceError("no mutation registered", entity_type=entity_type)
        entity_id = _entity_id(entity_type, input)
        if self.exists(entity_type, entity_id):
            logger.debug("[GraphQLSink] %s %s already exists", entity_type, entity_id)
            return
        self._request(entity_type, build_create_mutation(entity_type), {"input": input})


def safe_upsert(sink: PersistenceSink, entity_type: str, input: Dict[str, Any]) -> bool:
    """Upsert one entity, logging instead of raising. Returns True on success."""
    try:
        sink.upsert(entity_type, input)
        return True
    except PersistenceError as e:
        logger.error("[Persistence] Failed to persist %s %s: %s", entity_type, input.get("id"), e)
        return False


def build_persistence_sink(settings, graph_client: Optional[GraphClient] = None, dry_run: bool = False) -> PersistenceSink:
    """Pick the sink for ``settings.persistence_backend``; dry runs always record in memory."""
    if dry_run or settings.persistence_backend == "memory":
        return RecordingPersistenceSink()
    if settings.persistence_backend == "postgres":
        return PostgresPersistenceSink.from_config(DatabaseConfig())
    return GraphQLPersistenceSink(
        graph_client or GraphClient(timeout=settings.http_timeout_seconds),
        endpoint=settings.appsync_graphql,
        api_key=settings.appsync_key,
    )
