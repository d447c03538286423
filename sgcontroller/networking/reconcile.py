"""
Resource-independent fetch/diff/revoke/grant skeleton.

Each resource kind supplies its own comparator, its own scope predicate and
its own revoke/grant calls; the ordering and failure contract live here.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence
import logging
import threading

from .errors import check_cancelled

logger = logging.getLogger(__name__)


def diff(source: Sequence[Any], target: Sequence[Any], equal: Callable[[Any, Any], bool]) -> List[Any]:
    """
    Calculate the set difference source - target under a comparator.

    Args:
        source: Entries to keep when unmatched
        target: Entries to match against
        equal: Comparator deciding when two entries are the same

    Returns:
        List: every element of source for which no element of target is equal
    """
    return [s for s in source if not any(equal(s, t) for t in target)]


@dataclass(frozen=True)
class ChangeSet:
    to_revoke: List[Any] = field(default_factory=list)
    to_grant: List[Any] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_revoke and not self.to_grant


def compute_changes(observed: Sequence[Any], desired: Sequence[Any], equal: Callable[[Any, Any], bool],
                    selects: Optional[Callable[[Any], bool]] = None) -> ChangeSet:
    """
    Compute the mutations that converge observed toward desired.

    Only extra observed entries accepted by selects are revoked; the rest are
    left alone. Missing desired entries are always granted, once each even
    when desired repeats them.
    """
    extra = diff(observed, desired, equal)
    if selects is not None:
        to_revoke = [entry for entry in extra if selects(entry)]
    else:
        to_revoke = extra

    to_grant = []
    for entry in diff(desired, observed, equal):
        if not any(equal(entry, kept) for kept in to_grant):
            to_grant.append(entry)
    return ChangeSet(to_revoke=to_revoke, to_grant=to_grant)


def apply_changes(resource_id: str, changes: ChangeSet, revoke: Callable[[List[Any]], None],
                  grant: Callable[[List[Any]], None], cancel_event: threading.Event = None) -> None:
    """
    Apply a change set, revokes first.

    If revoking fails, granting is skipped so stale and new entries never
    coexist, and the revoke failure is raised as is. Errors are never wrapped
    or retried here.
    """
    if changes.empty:
        logger.debug(f"No changes needed for {resource_id}")
        return

    revoke_error = None
    if changes.to_revoke:
        check_cancelled(cancel_event, resource_id, "revoke")
        logger.info(f"Revoking {len(changes.to_revoke)} entries from {resource_id}")
        try:
            revoke(changes.to_revoke)
        except Exception as e:
            revoke_error = e

    if revoke_error is not None:
        if changes.to_grant:
            logger.warning(f"Skipping grant of {len(changes.to_grant)} entries on {resource_id} "
                           f"because revoke failed: {str(revoke_error)}")
        raise revoke_error

    if changes.to_grant:
        check_cancelled(cancel_event, resource_id, "grant")
        logger.info(f"Granting {len(changes.to_grant)} entries on {resource_id}")
        grant(changes.to_grant)
