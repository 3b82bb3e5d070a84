from __future__ import annotations

import logging

from listing_pipeline.services.http_client import ServiceHttpClient


log = logging.getLogger(__name__)


class AvailabilityProber:
    """
    Single bounded health check against the async listing service.
    A failed probe means "unavailable for this submission"; there is no retry.
    """

    def __init__(self, http: ServiceHttpClient, *, base_url: str, timeout_seconds: float):
        self._http = http
        self._url = f"{base_url.rstrip('/')}/health"
        self._timeout = timeout_seconds

    async def probe(self) -> bool:
        res = await self._http.get_json(url=self._url, timeout_seconds=self._timeout)
        if not res.ok:
            log.warning("async listing service unavailable: %s (%s)", res.error_code, res.error_message)
        return res.ok
