"""Fixed-interval polling for asynchronous provider jobs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal

import httpx

from pipeline.errors import ProviderError, ProviderJobFailed, ProviderTimeout

logger = logging.getLogger(__name__)

PollState = Literal["pending", "done", "failed"]


@dataclass
class PollOutcome:
    state: PollState
    url: str = ""
    error: str = ""
    raw_status: str = ""


def poll_job(
    fetch_status: Callable[[], PollOutcome],
    *,
    provider: str,
    job_id: str,
    interval_seconds: float,
    max_attempts: int,
    error_interval_seconds: float = 5.0,
    tolerate_errors: bool = False,
    sleep_first: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Check `fetch_status` until it reports done, failed, or attempts run out.

    Every status check counts as one attempt. With `tolerate_errors`, a
    transport or HTTP error during a check is logged, counted, and followed by
    `error_interval_seconds` of sleep; without it the error propagates. A
    `failed` outcome always raises `ProviderJobFailed`. `sleep_first` waits
    before each check instead of after it.
    """
    attempts = 0
    while attempts < max_attempts:
        if sleep_first:
            sleep(interval_seconds)
        try:
            outcome = fetch_status()
        except (httpx.HTTPError, ProviderError, ValueError) as exc:
            if not tolerate_errors or isinstance(exc, ProviderJobFailed):
                raise
            attempts += 1
            logger.warning(
                "%s job %s: status check failed (attempt %d/%d): %s",
                provider, job_id, attempts, max_attempts, exc,
            )
            if attempts >= max_attempts:
                break
            sleep(error_interval_seconds)
            continue

        attempts += 1
        logger.info(
            "%s job %s: status=%s (attempt %d/%d)",
            provider, job_id, outcome.raw_status or outcome.state, attempts, max_attempts,
        )
        if outcome.state == "done":
            return outcome.url
        if outcome.state == "failed":
            raise ProviderJobFailed(
                f"{provider} video rendering failed: {outcome.error or 'Unknown error'}",
                provider=provider,
            )
        if not sleep_first and attempts < max_attempts:
            sleep(interval_seconds)

    raise ProviderTimeout(f"{provider} video rendering timeout", provider=provider)
