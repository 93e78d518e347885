"""
Detector gateway client (async, httpx).

Wraps the external detection service: per-query analysis and the metrics
counters polled by the alert engine. Every failure mode (network error,
timeout, non-2xx status, body that is not a JSON object) surfaces as
GatewayUnavailable so callers have a single thing to recover from.
Base URL, credential and timeout come from explicit settings.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from sqlguard.core.config import get_settings
from sqlguard.core.errors import GatewayUnavailable
from sqlguard.core.logger import get_logger

log = get_logger(__name__)


class DetectorClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.DETECTOR_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DETECTOR_API_KEY
        self._timeout = timeout if timeout is not None else settings.DETECTOR_TIMEOUT
        self._transport = transport
        self._aclient: Optional[httpx.AsyncClient] = None

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._aclient

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        kwargs: Dict[str, Any] = {"headers": self._headers()}
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._get_async_client().request(method, url, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"{method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            raise GatewayUnavailable(
                f"{method} {path} returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise GatewayUnavailable(f"{method} {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise GatewayUnavailable(f"{method} {path} returned {type(data).__name__}, expected an object")
        return data

    async def analyze_query(self, query: str, model_choice: str = "ensemble", mode: str = "full") -> Dict[str, Any]:
        """Ask the detection service to score a query.

        Returns the raw response: is_malicious, confidence, per_model,
        warnings, recommendations, detection_id, processing_time_ms, timestamp.
        """
        payload = {"query": query, "model_choice": model_choice, "mode": mode}
        return await self._request("POST", "/detect", json=payload)

    async def fetch_metrics(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Current counters: total_queries, malicious_queries, queries_per_minute."""
        return await self._request("GET", "/metrics", timeout=timeout)

    async def aclose(self) -> None:
        if self._aclient is not None:
            await self._aclient.aclose()
            self._aclient = None


_client: Optional[DetectorClient] = None


def get_detector_client() -> DetectorClient:
    global _client
    if _client is None:
        _client = DetectorClient()
    return _client
