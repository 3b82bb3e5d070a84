from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Union

from listing_pipeline.schemas.jobs import JobSnapshot, ProgressEvent
from listing_pipeline.services.errors import JobFailedError, JobPollError, JobTimeoutError
from listing_pipeline.services.http_client import HttpResult, ServiceHttpClient


log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class PollOk:
    snapshot: JobSnapshot


@dataclass(frozen=True)
class PollTransient:
    reason: str


@dataclass(frozen=True)
class PollFatal:
    reason: str
    snapshot: JobSnapshot | None = None


PollOutcome = Union[PollOk, PollTransient, PollFatal]


def _as_progress(v: Any) -> int | None:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    return max(0, min(100, int(v)))


def parse_status_response(res: HttpResult, *, job_id: str, source: str, known_listing_id: str | None = None) -> PollOutcome:
    """
    Fold either endpoint generation's answer into one outcome. Retryable
    transport errors, 404s and shape problems are transient. A non-retryable
    error status is fatal without a snapshot; a job the server reports as
    failed, or a completed job with no listing id, is fatal with one.
    """
    if not res.ok:
        reason = f"status check failed ({source}): {res.server_message() or res.error_message or res.error_code}"
        if res.retryable or res.not_found:
            return PollTransient(reason)
        # 400/401/403 and the like will not heal by asking again
        return PollFatal(reason)

    body = res.detail
    if body.get("malformed_json"):
        return PollTransient(f"status check failed ({source}): malformed response body")
    if body.get("success") is False:
        return PollTransient(f"status check failed ({source}): {res.server_message() or 'success=false'}")

    # new service wraps in {"data": {...}}; fall back to the top level otherwise
    data = body.get("data") if isinstance(body.get("data"), dict) else body
    status = data.get("status")
    if not isinstance(status, str) or not status:
        return PollTransient(f"status check failed ({source}): response has no status")

    result = data.get("result")
    result = dict(result) if isinstance(result, dict) else dict(data)
    if known_listing_id and not (result.get("listingId") or result.get("listing_id")):
        # update jobs may not echo the id of the listing they changed
        result.setdefault("listingId", known_listing_id)
    error = data.get("error")
    snapshot = JobSnapshot(
        job_id=job_id,
        status=status,
        progress=_as_progress(data.get("progress")),
        result=result,
        error=error if isinstance(error, str) and error else None,
        source=source,
    )

    if snapshot.is_failed:
        return PollFatal(snapshot.error or "Listing job failed", snapshot)
    if snapshot.is_completed and not snapshot.listing_id:
        return PollFatal("Listing job completed without a listing id", snapshot)
    return PollOk(snapshot)


class StatusPoller:
    """
    Polls a listing job until it reaches a terminal state or the attempt bound
    runs out. Each attempt asks the primary endpoint; a 404 there (and only a
    404) triggers one query against the legacy endpoint in the same attempt.
    """

    def __init__(
        self,
        http: ServiceHttpClient,
        *,
        job_service_url: str,
        upload_service_url: str,
        timeout_seconds: float,
        max_attempts: int = 60,
        poll_interval_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._http = http
        self._primary = job_service_url.rstrip("/")
        self._legacy = upload_service_url.rstrip("/")
        self._timeout = timeout_seconds
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval_seconds
        self._sleep = sleep

    async def query(self, job_id: str, actor_id: str, known_listing_id: str | None = None) -> PollOutcome:
        headers = {"x-user-id": actor_id}
        res = await self._http.get_json(
            url=f"{self._primary}/listings/jobs/{job_id}",
            headers=headers,
            timeout_seconds=self._timeout,
        )
        if not res.not_found:
            return parse_status_response(res, job_id=job_id, source="primary", known_listing_id=known_listing_id)

        log.info("job %s not found on listing service, asking legacy upload service", job_id)
        res = await self._http.get_json(
            url=f"{self._legacy}/listings/status/{job_id}",
            headers=headers,
            timeout_seconds=self._timeout,
        )
        return parse_status_response(res, job_id=job_id, source="legacy", known_listing_id=known_listing_id)

    async def watch(
        self, job_id: str, actor_id: str, known_listing_id: str | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """
        Yield one event per answered attempt. The last event of a successful run
        has status "completed" and carries the listing id.
        """
        for attempt in range(1, self.max_attempts + 1):
            outcome = await self.query(job_id, actor_id, known_listing_id)

            if isinstance(outcome, PollFatal):
                if outcome.snapshot is None:
                    log.error("status checks for job %s rejected: %s", job_id, outcome.reason)
                    raise JobPollError(outcome.reason, job_id=job_id)
                log.error("listing job %s failed: %s", job_id, outcome.reason)
                raise JobFailedError(outcome.reason, job_id=job_id)

            if isinstance(outcome, PollOk):
                snap = outcome.snapshot
                yield ProgressEvent(
                    job_id=job_id,
                    attempt=attempt,
                    status=snap.status,
                    progress=snap.progress,
                    listing_id=snap.listing_id if snap.is_completed else None,
                )
                if snap.is_completed:
                    log.info("listing job %s completed listing_id=%s", job_id, snap.listing_id)
                    return
            else:
                if attempt == self.max_attempts:
                    raise JobPollError(outcome.reason, job_id=job_id)
                log.warning("job %s attempt %d/%d: %s; retrying", job_id, attempt, self.max_attempts, outcome.reason)

            if attempt < self.max_attempts:
                await self._sleep(self.poll_interval)

        raise JobTimeoutError(
            f"Listing job timed out after {self.max_attempts} status checks; it may still complete",
            job_id=job_id,
        )

