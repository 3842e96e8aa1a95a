"""
Conflict reconciliation between the local replica and the remote store

Last-writer-wins on `last_modified_at`, with a small set of monotonic fields
per entity type (OR_FIELDS, UNION_FIELDS) that are merged from both sides so a
stale write can never un-share something.
"""

import dataclasses
import logging
from typing import Any, List, Optional

from shelfsync.core.models import SyncEntity, ensure_utc

logger = logging.getLogger(__name__)


def _union(first: List[Any], second: List[Any]) -> List[Any]:
    """Order-preserving set union; `first` keeps its order"""
    merged = list(first)
    seen = set(merged)
    for item in second:
        if item not in seen:
            merged.append(item)
            seen.add(item)
    return merged


def _pick_winner(local: SyncEntity, remote: SyncEntity) -> SyncEntity:
    local_time = ensure_utc(local.last_modified_at)
    remote_time = ensure_utc(remote.last_modified_at)

    # Without both timestamps there is nothing to compare
    if local_time is None or remote_time is None:
        return local

    if local_time > remote_time:
        return local
    # Ties go to the remote copy
    return remote


def _merge_monotonic(winner: SyncEntity, loser: SyncEntity) -> SyncEntity:
    changes = {}

    for name in winner.OR_FIELDS:
        value = bool(getattr(winner, name)) or bool(getattr(loser, name))
        if value != getattr(winner, name):
            changes[name] = value

    for name in winner.UNION_FIELDS:
        current = list(getattr(winner, name) or [])
        value = _union(current, list(getattr(loser, name) or []))
        if value != current:
            changes[name] = value

    if not changes:
        return winner
    return dataclasses.replace(winner, **changes)


def reconcile(local: Optional[SyncEntity], remote: Optional[SyncEntity], *,
              deleted_remotely: bool = False) -> Optional[SyncEntity]:
    """
    Decide the surviving version of one entity.

    Args:
        local: Version in the local replica, if any
        remote: Version in the remote store, if any
        deleted_remotely: True when a delete of this entity has been
            confirmed by the remote store

    Returns:
        The entity to keep locally, or None when it should be removed.
        Never raises.
    """
    if local is None:
        return remote

    if remote is None:
        # Either deleted elsewhere or a local creation not pushed yet
        return None if deleted_remotely else local

    if type(local) is not type(remote) or local.id != remote.id:
        logger.warning(f"Cannot compare {type(local).__name__} {local.id} with "
                       f"{type(remote).__name__} {remote.id}; keeping local")
        return local

    try:
        winner = _pick_winner(local, remote)
        loser = remote if winner is local else local
        return _merge_monotonic(winner, loser)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Reconciliation of {local.entity_type.value} {local.id} fell back to local: {e}")
        return local
