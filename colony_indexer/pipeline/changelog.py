"""
Colony metadata changelog: each colony edit diffed against the one before it.
"""
from typing import List, Optional, Sequence

from colony_indexer.data_models.schemas import (
    Action,
    ColonyActionType,
    ColonyMetadata,
    MetadataChangelogEntry,
)
from colony_indexer.services.resolvers import BlobResolver
from colony_indexer.utils.logger import logger


def diff_metadata(
    action: Action,
    current: ColonyMetadata,
    previous: Optional[ColonyMetadata],
) -> MetadataChangelogEntry:
    previous = previous or ColonyMetadata()
    return MetadataChangelogEntry(
        transaction_hash=action.transaction_hash,
        colony_address=action.colony_address,
        timestamp=action.timestamp,
        new_display_name=current.display_name,
        old_display_name=previous.display_name,
        has_avatar_changed=current.avatar_hash != previous.avatar_hash,
        have_tokens_changed=len(current.token_addresses) != len(previous.token_addresses),
        has_whitelist_changed=current.is_whitelist_activated != previous.is_whitelist_activated,
    )


def build_metadata_changelog(
    actions: Sequence[Action],
    blob_resolver: BlobResolver,
) -> List[MetadataChangelogEntry]:
    """
    Walk colony edits in timestamp order, diffing each against its predecessor.

    Edits whose metadata blob can't be resolved are left out and don't move
    the "previous" marker.
    """
    edits = sorted(
        (action for action in actions if action.type == ColonyActionType.COLONY_EDIT),
        key=lambda action: action.timestamp,
    )
    entries = []
    previous: Optional[ColonyMetadata] = None
    for action in edits:
        blob = blob_resolver.resolve(action.metadata_hash)
        if blob is None:
            logger.warning(
                "[Changelog] Metadata %s for %s unavailable, skipping",
                action.metadata_hash, action.transaction_hash,
            )
            continue
        current = ColonyMetadata.from_blob(blob)
        entries.append(diff_metadata(action, current, previous))
        previous = current
    return entries
