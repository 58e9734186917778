"""Unit tests for event parsing and subgraph record models."""
import json

from colony_indexer.data_models.events import EventKind, parse_event
from colony_indexer.data_models.schemas import (
    ColonyMetadata,
    Domain,
    DomainMetadata,
    OneTxPayment,
    RawEvent,
    RoleBitmap,
)


class TestRawEvent:
    """Subgraph event rows."""

    def test_from_subgraph(self):
        raw = RawEvent.from_subgraph({
            "address": "0xabc",
            "name": "TokensMinted(address,address,uint256)",
            "args": '{"who": "0x1", "amount": "5"}',
            "transaction": {"hash": "0xtx", "block": {"number": "block_123", "timestamp": "1600000000"}},
        })
        assert raw.transaction_hash == "0xtx"
        assert raw.block_number == 123
        assert raw.block_timestamp == 1600000000
        assert raw.args == {"who": "0x1", "amount": "5"}

    def test_bad_args_json(self):
        assert RawEvent(transaction_hash="0x1", event_signature="X()", args_json="{oops").args == {}


class TestParseEvent:
    """Tagged union dispatch."""

    def test_unknown_signature(self):
        event = parse_event(RawEvent(transaction_hash="0x1", event_signature="Transfer(address,address,uint256)"))
        assert event.kind == EventKind.UNKNOWN
        assert event.payload is None

    def test_funds_moved_payload(self):
        event = parse_event(RawEvent(
            transaction_hash="0x1",
            event_signature="ColonyFundsMovedBetweenFundingPots(address,uint256,uint256,uint256,address)",
            args_json=json.dumps({"agent": "0xa", "fromPot": "1", "toPot": "4", "amount": 300, "token": "0xt"}),
        ))
        assert event.kind == EventKind.FUNDS_MOVED
        assert (event.payload.from_pot, event.payload.to_pot, event.payload.amount) == (1, 4, "300")
        assert event.agent == "0xa"

    def test_malformed_known_event_keeps_its_kind(self):
        """Args that fail validation drop the payload, not the kind."""
        event = parse_event(RawEvent(
            transaction_hash="0x1",
            event_signature="ArbitraryReputationUpdate(address,address,uint256,int256)",
            args_json=json.dumps({"amount": "5", "agent": "0xa"}),
        ))
        assert event.kind == EventKind.REPUTATION_UPDATE
        assert event.payload is None
        assert event.args == {"amount": "5", "agent": "0xa"}
        assert event.raw_amount == "5"
        assert event.agent == "0xa"


class TestSubgraphRecords:
    def test_one_tx_payment(self):
        payment = OneTxPayment.from_subgraph({
            "agent": "0xagent",
            "transaction": {"hash": "0xtx", "block": {"number": "block_9", "timestamp": "77"}},
            "payment": {
                "recipient": "0xrecipient",
                "domain": {"ethDomainId": "2"},
                "fundingPot": {"fundingPotPayouts": [{"token": {"address": "0xtoken"}, "amount": "1000"}]},
            },
        })
        assert payment.transaction_hash == "0xtx"
        assert payment.domain_id == 2
        assert payment.token_address == "0xtoken"
        assert payment.amount == "1000"


class TestMetadataBlobs:
    """Current and legacy blob layouts."""

    def test_colony_metadata_envelope(self):
        metadata = ColonyMetadata.from_blob({"data": {
            "colonyDisplayName": "Colony",
            "colonyAvatarHash": "QmAvatar",
            "colonyTokens": ["0x1", "0x2"],
            "isWhitelistActivated": True,
        }})
        assert metadata.display_name == "Colony"
        assert metadata.token_addresses == ["0x1", "0x2"]
        assert metadata.is_whitelist_activated is True

    def test_colony_metadata_legacy(self):
        assert ColonyMetadata.from_blob({"colonyDisplayName": "Old"}).display_name == "Old"

    def test_domain_metadata_layouts(self):
        nested = DomainMetadata.from_blob({"data": {"domainName": "Team", "domainColor": 3, "domainPurpose": "Build"}})
        legacy = DomainMetadata.from_blob({"domainName": "Legacy", "domainColor": 1})
        assert (nested.name, nested.color, nested.description) == ("Team", 3, "Build")
        assert (legacy.name, legacy.color) == ("Legacy", 1)

    def test_domain_fallback_names(self):
        assert Domain.fallback_name(1) == "Root"
        assert Domain.fallback_name(4) == "Domain #4"


class TestRoleBitmap:
    def test_slots(self):
        roles = RoleBitmap()
        assert roles.set(6, True) is True
        assert roles.set(4, True) is False
        assert roles.active_roles() == [6]
        roles.set(6, False)
        assert roles.get(6) is None
