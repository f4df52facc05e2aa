# linestamp/services/stamp_jobs.py
"""
Fire-and-forget work scheduled after a transition commits.

These run as FastAPI background tasks once the response has been sent.
There is no durable queue behind them: if the process dies mid-job the
stamp stays in ``generating`` / ``submitting``.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from linestamp.core.errors import AppError
from linestamp.services.image_generator import ImageGenerator
from linestamp.services.stamp_states import Trigger, transition
from linestamp.services.storage_gcp import StampStore
from linestamp.services.submission import SessionExpiredError, Submitter

logger = logging.getLogger(__name__)


def _finish(store: StampStore, stamp_id: str, trigger: Trigger) -> None:
    try:
        transition(store, stamp_id, trigger)
    except AppError as exc:
        # the stamp was moved on by another request while the job ran
        logger.warning("Stamp %s: could not apply %s: %s", stamp_id, trigger.value, exc.message)


def run_generation(store: StampStore, generator: ImageGenerator, stamp_id: str, user_id: str,
                   original_urls: Sequence[str], preset: Optional[dict] = None) -> None:
    try:
        generator.generate(stamp_id, user_id, original_urls, preset)
    except Exception:
        logger.exception("Image generation failed for stamp %s", stamp_id)
        _finish(store, stamp_id, Trigger.GENERATION_FAILED)
        return
    _finish(store, stamp_id, Trigger.GENERATION_SUCCEEDED)


def run_submission(store: StampStore, submitter: Submitter, stamp_id: str) -> None:
    try:
        submitter.submit(stamp_id)
    except SessionExpiredError as exc:
        logger.warning("Submission session expired for stamp %s: %s", stamp_id, exc)
        _finish(store, stamp_id, Trigger.SESSION_EXPIRED)
        return
    except Exception:
        logger.exception("Submission failed for stamp %s", stamp_id)
        _finish(store, stamp_id, Trigger.SUBMISSION_FAILED)
        return
    _finish(store, stamp_id, Trigger.SUBMISSION_SUCCEEDED)
