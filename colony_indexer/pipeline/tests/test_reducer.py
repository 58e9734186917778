"""Unit tests for the action reducer and metadata changelog."""
import json
from unittest.mock import MagicMock

from web3 import Web3

from colony_indexer.data_models.schemas import ColonyActionType, ColonyMetadata, OneTxPayment, RawEvent
from colony_indexer.exceptions import PersistenceError, TransportError
from colony_indexer.pipeline.changelog import build_metadata_changelog, diff_metadata
from colony_indexer.pipeline.reducer import (
    ActionReducer,
    group_by_transaction,
    merge_streams,
    persist_actions,
)
from colony_indexer.services.persistence import RecordingPersistenceSink

COLONY = Web3.to_checksum_address("0x" + "c" * 40)
NATIVE_TOKEN = Web3.to_checksum_address("0x" + "d" * 40)
ALICE = Web3.to_checksum_address("0x" + "a" * 40)
BOB = Web3.to_checksum_address("0x" + "b" * 40)


def raw(signature, args, tx="0x01", timestamp=1, block=10):
    return RawEvent(
        transaction_hash=tx,
        block_number=block,
        block_timestamp=timestamp,
        event_signature=signature,
        args_json=json.dumps(args),
    )


def make_reducer(chain=None, lookup=None):
    chain = chain or MagicMock()
    lookup = lookup or MagicMock()
    return ActionReducer(COLONY, NATIVE_TOKEN, chain, lookup), chain, lookup


class TestGrouping:
    """Transaction grouping and stream merging."""

    def test_same_transaction_becomes_one_action(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([
            raw("DomainAdded(address,uint256)", {"agent": ALICE, "domainId": 2}, tx="0x01"),
            raw("DomainMetadata(address,uint256,string)", {"agent": ALICE, "domainId": 2, "metadata": "QmD"}, tx="0x01"),
        ])

        actions = reducer.reduce(events)

        assert len(actions) == 1
        assert actions[0].type == ColonyActionType.CREATE_DOMAIN
        assert actions[0].from_domain_id == 2
        assert actions[0].metadata_hash == "QmD"

    def test_one_persistence_call_per_transaction(self):
        reducer, _, _ = make_reducer()
        sink = RecordingPersistenceSink()
        events = merge_streams([
            raw("DomainAdded(address,uint256)", {"agent": ALICE, "domainId": 2}, tx="0x01"),
            raw("DomainMetadata(address,uint256,string)", {"agent": ALICE, "domainId": 2, "metadata": "QmD"}, tx="0x01"),
        ])

        assert persist_actions(reducer.reduce(events), sink) == 1
        assert [kind for kind, _ in sink.calls] == ["ColonyAction"]
        assert sink.calls[0][1]["id"] == "0x01"

    def test_groups_keep_first_seen_order(self):
        events = merge_streams([
            raw("TokenUnlocked()", {}, tx="0x02", timestamp=1),
            raw("TokenUnlocked()", {}, tx="0x01", timestamp=2),
            raw("ColonyMetadata(address,string)", {"metadata": "Qm"}, tx="0x02", timestamp=3),
        ])
        groups = group_by_transaction(events)
        assert [group.transaction_hash for group in groups] == ["0x02", "0x01"]
        assert len(groups[0].events) == 2

    def test_merge_is_stable_by_timestamp(self):
        payment = OneTxPayment(transaction_hash="0xpay", block_timestamp=2, agent=ALICE, recipient=BOB, amount="7")
        events = merge_streams(
            [raw("TokenUnlocked()", {}, tx="0x01", timestamp=1), raw("TokenUnlocked()", {}, tx="0x03", timestamp=3)],
            [payment],
        )
        assert [event.transaction_hash for event in events] == ["0x01", "0xpay", "0x03"]


class TestEnrichment:
    """Type specific fields."""

    def test_role_changes_bitmap_and_agent(self):
        reducer, chain, _ = make_reducer()
        events = merge_streams([
            raw("ColonyRoleSet(address,address,uint256,uint8,bool)",
                {"agent": BOB, "user": ALICE.lower(), "domainId": 2, "role": 5, "setTo": True}),
            raw("ColonyRoleSet(address,address,uint256,uint8,bool)",
                {"agent": BOB, "user": ALICE.lower(), "domainId": 2, "role": 6, "setTo": True}),
            raw("ColonyRoleSet(address,address,uint256,uint8,bool)",
                {"agent": BOB, "user": ALICE.lower(), "domainId": 2, "role": 5, "setTo": False}),
        ])

        [action] = reducer.reduce(events)

        assert action.type == ColonyActionType.SET_USER_ROLES
        assert action.initiator_address == BOB
        assert action.recipient_address == ALICE
        assert action.from_domain_id == 2
        assert action.role_changes.role_5 is None
        assert action.role_changes.role_6 is True
        chain.get_transaction_receipt.assert_not_called()

    def test_role_changes_fall_back_to_sender(self):
        chain = MagicMock()
        chain.get_transaction_receipt.return_value = {"from": BOB}
        reducer, _, _ = make_reducer(chain=chain)
        events = merge_streams([
            raw("ColonyRoleSet(address,uint256,uint8,bool)", {"user": ALICE, "domainId": 1, "role": 1, "setTo": True}),
        ])

        [action] = reducer.reduce(events)

        assert action.initiator_address == BOB
        chain.get_transaction_receipt.assert_called_once_with("0x01")

    def test_zero_mint_is_skipped(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([raw("TokensMinted(address,address,uint256)", {"agent": ALICE, "who": BOB, "amount": "0"})])
        assert reducer.reduce(events) == []

    def test_mint_uses_native_token(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([raw("TokensMinted(address,address,uint256)", {"agent": ALICE, "who": BOB, "amount": "100"})])

        [action] = reducer.reduce(events)

        assert action.recipient_address == BOB
        assert action.amount == "100"
        assert action.token_address == NATIVE_TOKEN

    def test_root_domain_edit_is_suppressed(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([
            raw("DomainMetadata(address,uint256,string)", {"agent": ALICE, "domainId": 1, "metadata": "Qm"}),
        ])
        assert reducer.reduce(events) == []

    def test_subdomain_edit_is_kept(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([
            raw("DomainMetadata(address,uint256,string)", {"agent": ALICE, "domainId": 3, "metadata": "Qm"}),
        ])
        [action] = reducer.reduce(events)
        assert action.type == ColonyActionType.EDIT_DOMAIN
        assert action.from_domain_id == 3

    def test_move_funds_resolves_pots(self):
        lookup = MagicMock()
        lookup.domain_for_pot.side_effect = lambda pot: {1: 1, 7: 2}.get(pot)
        reducer, _, _ = make_reducer(lookup=lookup)
        events = merge_streams([raw(
            "ColonyFundsMovedBetweenFundingPots(address,uint256,uint256,uint256,address)",
            {"agent": ALICE, "fromPot": 1, "toPot": 7, "amount": "50", "token": BOB.lower()},
        )])

        [action] = reducer.reduce(events)

        assert (action.from_domain_id, action.to_domain_id) == (1, 2)
        assert action.token_address == BOB
        assert action.amount == "50"

    def test_move_funds_skipped_when_pot_unresolved(self):
        lookup = MagicMock()
        lookup.domain_for_pot.side_effect = lambda pot: 1 if pot == 1 else None
        reducer, _, _ = make_reducer(lookup=lookup)
        events = merge_streams([raw(
            "ColonyFundsMovedBetweenFundingPots(address,uint256,uint256,uint256,address)",
            {"agent": ALICE, "fromPot": 1, "toPot": 9, "amount": "50", "token": BOB},
        )])
        assert reducer.reduce(events) == []

    def test_reputation_maps_skill_to_domain(self):
        lookup = MagicMock()
        lookup.domain_for_skill.return_value = 4
        reducer, _, _ = make_reducer(lookup=lookup)
        events = merge_streams([raw(
            "ArbitraryReputationUpdate(address,address,uint256,int256)",
            {"agent": ALICE, "user": BOB, "skillId": 12, "amount": "-500"},
        )])

        [action] = reducer.reduce(events)

        assert action.type == ColonyActionType.EMIT_DOMAIN_REPUTATION_PENALTY
        assert action.from_domain_id == 4
        assert action.recipient_address == BOB
        lookup.domain_for_skill.assert_called_once_with(12)

    def test_reputation_skipped_for_unknown_skill(self):
        lookup = MagicMock()
        lookup.domain_for_skill.return_value = None
        reducer, _, _ = make_reducer(lookup=lookup)
        events = merge_streams([raw(
            "ArbitraryReputationUpdate(address,address,uint256,int256)",
            {"agent": ALICE, "user": BOB, "skillId": 99, "amount": "5"},
        )])
        assert reducer.reduce(events) == []

    def test_incomplete_funds_move_is_skipped_not_reclassified(self):
        """A funds move missing its pots still decides the group, then gets dropped."""
        lookup = MagicMock()
        reducer, chain, _ = make_reducer(lookup=lookup)
        events = merge_streams([
            raw(
                "ColonyFundsMovedBetweenFundingPots(address,uint256,uint256,uint256,address)",
                {"agent": ALICE, "toPot": 7, "amount": "50"},
            ),
            raw("TokensMinted(address,address,uint256)", {"agent": ALICE, "who": BOB, "amount": "5"}),
        ])

        assert reducer.reduce(events) == []
        lookup.domain_for_pot.assert_not_called()
        chain.get_transaction_receipt.assert_not_called()

    def test_incomplete_reputation_update_is_skipped(self):
        lookup = MagicMock()
        reducer, _, _ = make_reducer(lookup=lookup)
        events = merge_streams([raw(
            "ArbitraryReputationUpdate(address,address,uint256,int256)",
            {"agent": ALICE, "amount": "-500"},
        )])

        assert reducer.reduce(events) == []
        lookup.domain_for_skill.assert_not_called()

    def test_role_change_without_usable_events_is_skipped(self):
        reducer, _, _ = make_reducer()
        events = merge_streams([raw(
            "ColonyRoleSet(address,address,uint256,uint8,bool)",
            {"agent": ALICE, "user": BOB, "domainId": "not-a-number", "role": 1, "setTo": True},
        )])
        assert reducer.reduce(events) == []

    def test_payment_fields(self):
        reducer, _, _ = make_reducer()
        payment = OneTxPayment(
            transaction_hash="0xpay", block_timestamp=5, agent=ALICE, recipient=BOB.lower(),
            domain_id=2, token_address=NATIVE_TOKEN, amount="42",
        )

        [action] = reducer.reduce(merge_streams([], [payment]))

        assert action.type == ColonyActionType.PAYMENT
        assert action.initiator_address == ALICE
        assert action.recipient_address == BOB
        assert action.from_domain_id == 2
        assert action.amount == "42"

    def test_version_upgrade_and_unlock_use_sender_without_agent(self):
        chain = MagicMock()
        chain.get_transaction_receipt.return_value = {"from": ALICE}
        reducer, _, _ = make_reducer(chain=chain)
        events = merge_streams([
            raw("ColonyUpgraded(uint256,uint256)", {"oldVersion": 7, "newVersion": 8}, tx="0x01"),
            raw("TokenUnlocked()", {}, tx="0x02"),
        ])

        upgrade, unlock = reducer.reduce(events)

        assert upgrade.new_version == 8
        assert upgrade.initiator_address == ALICE
        assert unlock.token_address == NATIVE_TOKEN
        assert unlock.initiator_address == ALICE

    def test_sender_lookup_failure_leaves_initiator_empty(self):
        chain = MagicMock()
        chain.get_transaction_receipt.side_effect = TransportError("down", gateway="chain:receipt")
        reducer, _, _ = make_reducer(chain=chain)

        [action] = reducer.reduce(merge_streams([raw("TokenUnlocked()", {})]))

        assert action.initiator_address is None

    def test_recovery_initiator_is_user(self):
        reducer, _, _ = make_reducer()
        [action] = reducer.reduce(merge_streams([raw("RecoveryModeEntered(address)", {"user": ALICE})]))
        assert action.type == ColonyActionType.RECOVERY
        assert action.initiator_address == ALICE

    def test_generic_never_looks_up_sender(self):
        reducer, chain, _ = make_reducer()
        [action] = reducer.reduce(merge_streams([raw("Transfer(address,address,uint256)", {})]))
        assert action.type == ColonyActionType.GENERIC
        assert action.initiator_address is None
        chain.get_transaction_receipt.assert_not_called()


class TestPersistActions:
    """Failure isolation."""

    def test_failed_upsert_does_not_stop_batch(self):
        reducer, _, _ = make_reducer()
        actions = reducer.reduce(merge_streams([
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "Qm1"}, tx="0x01"),
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "Qm2"}, tx="0x02"),
        ]))
        sink = MagicMock()
        sink.upsert.side_effect = [PersistenceError("down", entity_type="ColonyAction"), None]

        assert persist_actions(actions, sink) == 1
        assert sink.upsert.call_count == 2


class TestMetadataChangelog:
    """Diffing consecutive colony edits."""

    def test_diffs_against_previous_edit(self):
        reducer, _, _ = make_reducer()
        actions = reducer.reduce(merge_streams([
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "QmA"}, tx="0x01", timestamp=1),
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "QmB"}, tx="0x02", timestamp=2),
        ]))
        blobs = {
            "QmA": {"data": {"colonyDisplayName": "Old", "colonyTokens": [ALICE]}},
            "QmB": {"data": {"colonyDisplayName": "New", "colonyAvatarHash": "QmAvatar", "colonyTokens": [ALICE]}},
        }
        resolver = MagicMock()
        resolver.resolve.side_effect = blobs.get

        first, second = build_metadata_changelog(actions, resolver)

        assert first.old_display_name is None
        assert first.new_display_name == "Old"
        assert first.have_tokens_changed is True
        assert second.old_display_name == "Old"
        assert second.new_display_name == "New"
        assert second.has_avatar_changed is True
        assert second.have_tokens_changed is False
        assert second.has_whitelist_changed is False

    def test_unresolved_blob_is_skipped(self):
        reducer, _, _ = make_reducer()
        actions = reducer.reduce(merge_streams([
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "QmMissing"}, tx="0x01"),
        ]))
        resolver = MagicMock()
        resolver.resolve.return_value = None

        assert build_metadata_changelog(actions, resolver) == []

    def test_first_edit_diffs_against_empty_metadata(self):
        reducer, _, _ = make_reducer()
        [action] = reducer.reduce(merge_streams([
            raw("ColonyMetadata(address,string)", {"agent": ALICE, "metadata": "QmA"}, tx="0x01"),
        ]))
        current = ColonyMetadata(display_name="Bees", is_whitelist_activated=True)

        entry = diff_metadata(action, current, None)

        assert entry.transaction_hash == action.transaction_hash
        assert entry.old_display_name is None
        assert entry.has_whitelist_changed is True
        assert entry.has_avatar_changed is False
        assert entry.have_tokens_changed is False
