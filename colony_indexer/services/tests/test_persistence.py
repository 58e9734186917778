"""Unit tests for the persistence sinks."""
import pytest
from unittest.mock import MagicMock

from colony_indexer.exceptions import PersistenceError
from colony_indexer.services.persistence import (
    GraphQLPersistenceSink,
    PostgresPersistenceSink,
    RecordingPersistenceSink,
    build_persistence_sink,
    safe_upsert,
)


class TestRecordingSink:
    """In-memory sink."""

    def test_records_calls_and_latest_value(self):
        sink = RecordingPersistenceSink()
        sink.upsert("Token", {"id": "0xabc", "symbol": "A"})
        sink.upsert("Token", {"id": "0xabc", "symbol": "B"})

        assert len(sink.calls) == 2
        assert sink.records[("Token", "0xabc")]["symbol"] == "B"
        assert sink.of_type("Token")[0]["symbol"] == "A"

    def test_missing_id_raises(self):
        with pytest.raises(PersistenceError):
            RecordingPersistenceSink().upsert("Token", {"symbol": "A"})


class TestSafeUpsert:
    def test_swallows_persistence_errors(self):
        sink = MagicMock()
        sink.upsert.side_effect = PersistenceError("down", entity_type="Colony")
        assert safe_upsert(sink, "Colony", {"id": "0xabc"}) is False

    def test_success(self):
        sink = RecordingPersistenceSink()
        assert safe_upsert(sink, "Colony", {"id": "0xabc"}) is True


class TestGraphQLSink:
    """Existence-checked create mutations."""

    def setup_method(self):
        self.graph = MagicMock()
        self.sink = GraphQLPersistenceSink(self.graph, "http://appsync.test/graphql", api_key="key")

    def test_creates_missing_entity(self):
        self.graph.query.side_effect = [
            {"data": {"getToken": None}},
            {"data": {"createToken": {"id": "0xabc"}}},
        ]

        self.sink.upsert("Token", {"id": "0xabc", "symbol": "A"})

        assert self.graph.query.call_count == 2
        document, variables = self.graph.query.call_args[0]
        assert "createToken(input: $input)" in document
        assert variables == {"input": {"id": "0xabc", "symbol": "A"}}
        assert self.graph.query.call_args[1]["headers"] == {"x-api-key": "key"}

    def test_existing_entity_is_left_alone(self):
        self.graph.query.return_value = {"data": {"getToken": {"id": "0xabc"}}}

        self.sink.upsert("Token", {"id": "0xabc"})

        assert self.graph.query.call_count == 1

    def test_unreachable_endpoint_raises(self):
        self.graph.query.return_value = None
        with pytest.raises(PersistenceError):
            self.sink.upsert("ColonyAction", {"id": "0xtx"})

    def test_mutation_errors_raise(self):
        self.graph.query.side_effect = [
            {"data": {"getColonyAction": None}},
            {"errors": [{"message": "validation"}]},
        ]
        with pytest.raises(PersistenceError):
            self.sink.upsert("ColonyAction", {"id": "0xtx"})

    def test_unknown_entity_type(self):
        with pytest.raises(PersistenceError):
            self.sink.upsert("Spaceship", {"id": "1"})


class TestPostgresSink:
    """JSONB upserts through the connection pool."""

    def test_upsert_executes_on_conflict_statement(self):
        pool = MagicMock()
        cursor = pool.connection.return_value.__enter__.return_value.cursor.return_value.__enter__.return_value
        sink = PostgresPersistenceSink(pool, table="entities")

        sink.upsert("Domain", {"id": "0xabc_2", "name": "Team"})

        # schema creation, then the upsert
        assert cursor.execute.call_count == 2
        params = cursor.execute.call_args[0][1]
        assert params[0] == "Domain"
        assert params[1] == "0xabc_2"
        assert params[2].adapted == {"id": "0xabc_2", "name": "Team"}

    def test_schema_is_created_once(self):
        pool = MagicMock()
        cursor = pool.connection.return_value.__enter__.return_value.cursor.return_value.__enter__.return_value
        sink = PostgresPersistenceSink(pool)

        sink.upsert("Domain", {"id": "1"})
        sink.upsert("Domain", {"id": "2"})

        assert cursor.execute.call_count == 3

    def test_pool_failure_propagates_as_persistence_error(self):
        pool = MagicMock()
        pool.connection.side_effect = PersistenceError("backoff")
        sink = PostgresPersistenceSink(pool)

        assert safe_upsert(sink, "Domain", {"id": "1"}) is False


class TestBuildPersistenceSink:
    def test_dry_run_records(self):
        settings = MagicMock(persistence_backend="postgres")
        assert isinstance(build_persistence_sink(settings, dry_run=True), RecordingPersistenceSink)

    def test_graphql_backend(self):
        settings = MagicMock(
            persistence_backend="graphql",
            appsync_graphql="http://appsync.test/graphql",
            appsync_key="key",
        )
        sink = build_persistence_sink(settings, graph_client=MagicMock())
        assert isinstance(sink, GraphQLPersistenceSink)
        assert sink.endpoint == "http://appsync.test/graphql"
