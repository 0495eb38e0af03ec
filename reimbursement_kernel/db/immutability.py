"""
ORM-level append-only enforcement for reimbursement records.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity                      | When Immutable                    | Why
----------------------------|-----------------------------------|--------------------------------
ReviewCommentModel          | ALWAYS (from creation)            | Review history is the audit trail
ReimbursementRequestModel   | Once status is DISBURSED/REJECTED | Terminal requests are final

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failed check aborts the flush; the database is never modified.

For requests the question is "WAS it terminal", not "IS it terminal": the
transition into DISBURSED or REJECTED is itself an UPDATE and must be
allowed.  Attribute history tells the two apart.

Bulk ``update()``/``delete()`` statements bypass mapper events; the request
store never issues them.

===============================================================================
USAGE
===============================================================================

    register_immutability_listeners()    # idempotent, done by init_engine_from_url
    unregister_immutability_listeners()  # TESTS ONLY
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from reimbursement_kernel.exceptions import ImmutabilityViolationError
from reimbursement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_STATUS_VALUES = frozenset({"DISBURSED", "REJECTED"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_review_comment_update(mapper, connection, target):
    """Review comments are never modified."""
    _blocked(
        "ReviewComment",
        str(target.id),
        "UPDATE",
        "Review history entries are immutable and cannot be modified",
    )


def _check_review_comment_delete(mapper, connection, target):
    """Review comments are never deleted."""
    _blocked(
        "ReviewComment",
        str(target.id),
        "DELETE",
        "Review history entries cannot be deleted",
    )


def _was_terminal(target) -> bool:
    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] in _TERMINAL_STATUS_VALUES
    if not status_history.added:
        return target.status in _TERMINAL_STATUS_VALUES
    return False


def _check_request_update(mapper, connection, target):
    """
    Block any change to a request that was already terminal.

    Allows the transition INTO a terminal status (that UPDATE is the
    transition itself).
    """
    if _was_terminal(target):
        _blocked(
            "ReimbursementRequest",
            target.application_id,
            "UPDATE",
            f"Request is final in status {target.status}",
        )


def _check_request_delete(mapper, connection, target):
    """Terminal requests are kept forever."""
    if _was_terminal(target):
        _blocked(
            "ReimbursementRequest",
            target.application_id,
            "DELETE",
            f"Request is final in status {target.status}",
        )


def _listeners():
    from reimbursement_kernel.models.request import (
        ReimbursementRequestModel,
        ReviewCommentModel,
    )

    return (
        (ReviewCommentModel, "before_update", _check_review_comment_update),
        (ReviewCommentModel, "before_delete", _check_review_comment_delete),
        (ReimbursementRequestModel, "before_update", _check_request_update),
        (ReimbursementRequestModel, "before_delete", _check_request_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only enforcement listeners.

    WARNING: Only use this in tests that must write forbidden rows.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
