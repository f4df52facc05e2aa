# linestamp/services/stamp_states.py
"""
Stamp lifecycle.

    pending_upload / pending_generate ─begin_generation─► generating
    (any) ─set_preset─► generating
    generating ─► generated | failed
    generated | session_expired ─begin_submission─► submitting
    failed ─retry─► submitting   (retryCount + 1)
    submitting ─► submitted | failed | session_expired

Every transition reads and writes the stamp inside one Firestore
transaction. Checks run in a fixed order: exists, owner, current status.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, NamedTuple, Optional

from linestamp.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from linestamp.models.stamps import StampStatus as S
from linestamp.services.storage_gcp import StampStore, fs_safe, now_iso

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    SET_PRESET = "set_preset"
    BEGIN_GENERATION = "begin_generation"
    GENERATION_SUCCEEDED = "generation_succeeded"
    GENERATION_FAILED = "generation_failed"
    BEGIN_SUBMISSION = "begin_submission"
    RETRY = "retry"
    SUBMISSION_SUCCEEDED = "submission_succeeded"
    SUBMISSION_FAILED = "submission_failed"
    SESSION_EXPIRED = "session_expired"


class Rule(NamedTuple):
    allowed: Optional[FrozenSet[S]]    # None == any status
    target: S
    verb: str                          # used in the 403 message


TRANSITIONS: Dict[Trigger, Rule] = {
    Trigger.SET_PRESET:           Rule(None, S.GENERATING, "modify"),
    Trigger.BEGIN_GENERATION:     Rule(frozenset({S.PENDING_UPLOAD, S.PENDING_GENERATE}), S.GENERATING, "generate"),
    Trigger.GENERATION_SUCCEEDED: Rule(frozenset({S.GENERATING}), S.GENERATED, "modify"),
    Trigger.GENERATION_FAILED:    Rule(frozenset({S.GENERATING}), S.FAILED, "modify"),
    Trigger.BEGIN_SUBMISSION:     Rule(frozenset({S.GENERATED, S.SESSION_EXPIRED}), S.SUBMITTING, "submit"),
    Trigger.RETRY:                Rule(frozenset({S.FAILED}), S.SUBMITTING, "retry"),
    Trigger.SUBMISSION_SUCCEEDED: Rule(frozenset({S.SUBMITTING}), S.SUBMITTED, "modify"),
    Trigger.SUBMISSION_FAILED:    Rule(frozenset({S.SUBMITTING}), S.FAILED, "modify"),
    Trigger.SESSION_EXPIRED:      Rule(frozenset({S.SUBMITTING}), S.SESSION_EXPIRED, "modify"),
}


def new_stamp(user_id: str) -> Dict[str, Any]:
    """Document for a stamp created by an image upload; it starts out generating."""
    now = now_iso()
    return {
        "userId": user_id,
        "status": S.GENERATING.value,
        "retryCount": 0,
        "createdAt": now,
        "updatedAt": now,
    }


def ensure_owner(stamp: Optional[Dict[str, Any]], caller_id: Optional[str], verb: str = "access") -> Dict[str, Any]:
    if stamp is None:
        raise NotFoundError("Stamp not found")
    if caller_id is not None and stamp.get("userId") != caller_id:
        raise ForbiddenError(f"You do not have permission to {verb} this stamp")
    return stamp


def plan_transition(stamp: Optional[Dict[str, Any]], trigger: Trigger,
                    caller_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate ``trigger`` against the current stamp and return the field updates
    to write. Pure; raises NotFoundError / ForbiddenError / InvalidStateError.
    """
    rule = TRANSITIONS[trigger]
    ensure_owner(stamp, caller_id, rule.verb)

    current = stamp.get("status")
    if rule.allowed is not None and current not in {s.value for s in rule.allowed}:
        raise InvalidStateError(current, [s.value for s in rule.allowed])

    updates: Dict[str, Any] = {"status": rule.target.value, "updatedAt": now_iso()}
    if trigger is Trigger.RETRY:
        updates["retryCount"] = int(stamp.get("retryCount") or 0) + 1
    return updates


def transition(store: StampStore, stamp_id: str, trigger: Trigger,
               caller_id: Optional[str] = None,
               extra: Optional[Callable[[Any, Dict[str, Any]], Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Apply ``trigger`` to the stamp atomically and return the stamp as written.

    ``extra(txn, stamp)`` may read further documents inside the same
    transaction (after the ownership/state checks) and return additional
    fields to write with the status change.
    """
    ref = store.stamp_ref(stamp_id)

    def _apply(txn):
        snap = ref.get(transaction=txn)
        stamp = (snap.to_dict() or {}) | {"id": snap.id} if snap.exists else None
        updates = plan_transition(stamp, trigger, caller_id)
        if extra is not None:
            updates.update(extra(txn, stamp))
        txn.update(ref, fs_safe(updates))
        return stamp | updates

    result = store.run_transaction(_apply)
    logger.info("Stamp %s: %s -> %s", stamp_id, trigger.value, result["status"])
    return result
