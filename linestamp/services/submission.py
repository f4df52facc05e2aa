# linestamp/services/submission.py
"""
Mock marketplace submission (stands in for the browser-automation flow).
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

SUBMISSION_STEPS = (
    "Launching browser",
    "Opening LINE Creators Market",
    "Signing in with the creator account",
    "Opening the stamp application form",
    "Filling in metadata",
    "Uploading images",
    "Submitting the form",
)


class SessionExpiredError(RuntimeError):
    """The marketplace login session is no longer valid; the user must sign in again."""


class Submitter(Protocol):
    def submit(self, stamp_id: str) -> None: ...


class MockSubmitter:
    def __init__(self, step_delay_s: float = 0.5, final_delay_s: float = 2.0,
                 session_check: Optional[Callable[[str], bool]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.step_delay_s = step_delay_s
        self.final_delay_s = final_delay_s
        self.session_check = session_check or (lambda _stamp_id: True)
        self._sleep = sleep

    def submit(self, stamp_id: str) -> None:
        logger.info("Mock submission started for stamp %s", stamp_id)
        if not self.session_check(stamp_id):
            raise SessionExpiredError(f"Marketplace session expired while submitting {stamp_id}")

        for step in SUBMISSION_STEPS:
            self._sleep(self.step_delay_s)
            logger.info("[%s] %s...", stamp_id, step)
        self._sleep(self.final_delay_s)
        logger.info("Mock submission completed for stamp %s", stamp_id)
