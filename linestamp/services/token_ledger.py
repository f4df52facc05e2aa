# linestamp/services/token_ledger.py
from __future__ import annotations

import logging
from typing import Optional

from linestamp.core.errors import BadRequestError, InsufficientBalanceError, NotFoundError
from linestamp.services.storage_gcp import StampStore, now_iso

logger = logging.getLogger(__name__)


def _require_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadRequestError("amount must be a positive integer")
    return amount


def consume(store: StampStore, user_id: str, stamp_id: str, amount: int) -> int:
    """Spend ``amount`` tokens on a stamp; returns the remaining balance."""
    amount = _require_positive(amount)
    user_ref = store.users.document(user_id)
    record_ref = store.token_transactions.document()

    def _consume(txn) -> int:
        snap = user_ref.get(transaction=txn)
        if not snap.exists:
            raise NotFoundError("User not found")
        balance = int((snap.to_dict() or {}).get("tokenBalance") or 0)
        if balance < amount:
            raise InsufficientBalanceError(balance, amount)

        now = now_iso()
        remaining = balance - amount
        txn.update(user_ref, {"tokenBalance": remaining, "updatedAt": now})
        txn.set(record_ref, {
            "userId": user_id,
            "type": "consume",
            "amount": -amount,
            "stampId": stamp_id,
            "createdAt": now,
        })
        return remaining

    remaining = store.run_transaction(_consume)
    logger.info("Tokens consumed: user=%s stamp=%s -%d (remaining %d)", user_id, stamp_id, amount, remaining)
    return remaining


def credit(store: StampStore, user_id: str, amount: int,
           package_id: Optional[str] = None, session_id: Optional[str] = None) -> int:
    """
    Add purchased tokens; returns the new balance.

    Replayed webhook deliveries with the same ``session_id`` credit again;
    nothing here deduplicates them.
    """
    amount = _require_positive(amount)
    user_ref = store.users.document(user_id)
    record_ref = store.token_transactions.document()

    def _credit(txn) -> int:
        snap = user_ref.get(transaction=txn)
        if not snap.exists:
            raise NotFoundError("User not found")
        balance = int((snap.to_dict() or {}).get("tokenBalance") or 0) + amount

        now = now_iso()
        txn.update(user_ref, {"tokenBalance": balance, "updatedAt": now})
        record = {
            "userId": user_id,
            "type": "purchase",
            "amount": amount,
            "createdAt": now,
        }
        if package_id:
            record["packageId"] = package_id
        if session_id:
            record["stripeSessionId"] = session_id
        txn.set(record_ref, record)
        return balance

    balance = store.run_transaction(_credit)
    logger.info("Tokens added: user=%s +%d (balance %d)", user_id, amount, balance)
    return balance
