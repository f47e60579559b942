"""
Remote Availability Feed Client

Fetches a per-day availability map for a vehicle from an external system
(partner marketplace, telematics, franchise calendar). Used as the remote
side of availability conflict detection when the caller does not supply one.

Expected response body:
    {"availability": {"2025-01-01": true, "2025-01-02": false, ...}}
or
    {"availability": [{"date": "2025-01-01", "available": true}, ...]}
"""

import time
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class RemoteAvailabilityError(Exception):
    """Feed unreachable or returned an unusable response"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RemoteAvailabilityClient:
    base_url: str
    api_key: str = ""
    timeout: float = 20.0
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    transport: Optional[httpx.BaseTransport] = None

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, path: str, params: dict) -> dict:
        url = f"{self.base_url.rstrip('/')}{path}"
        last_error = None

        for attempt in range(self.max_retries):
            try:
                with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                    response = client.get(url, headers=self._get_headers(), params=params)
            except httpx.HTTPError as e:
                last_error = str(e)
                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                logger.warning(f"Remote availability request failed: {e}, retrying in {delay}s")
                time.sleep(delay)
                continue

            # Server error or throttled - retry
            if response.status_code >= 500 or response.status_code == 429:
                last_error = f"HTTP {response.status_code}"
                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                logger.warning(f"Remote availability returned {response.status_code}, retrying in {delay}s")
                time.sleep(delay)
                continue

            # Client error - don't retry
            if response.status_code >= 400:
                raise RemoteAvailabilityError(
                    f"Remote availability rejected request: HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise RemoteAvailabilityError(f"Remote availability returned invalid JSON: {e}")

        raise RemoteAvailabilityError(f"Remote availability unavailable after {self.max_retries} attempts: {last_error}")

    def fetch_availability(self, vehicle_id: str, start: date, end: date) -> Dict[date, bool]:
        """Availability per day in [start, end) as reported by the feed."""
        data = self._request(
            f"/vehicles/{vehicle_id}/availability",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
        return parse_availability_payload(data, start, end)


def parse_availability_payload(data: dict, start: date, end: date) -> Dict[date, bool]:
    if not isinstance(data, dict) or "availability" not in data:
        raise RemoteAvailabilityError("Remote availability response has no 'availability' field")

    raw = data["availability"]
    if isinstance(raw, dict):
        items = raw.items()
    elif isinstance(raw, list):
        items = ((item.get("date"), item.get("available")) for item in raw if isinstance(item, dict))
    else:
        raise RemoteAvailabilityError("Remote availability 'availability' must be an object or a list")

    result = {}
    for day_str, available in items:
        try:
            day = date.fromisoformat(str(day_str))
        except ValueError:
            logger.warning(f"Skipping remote availability entry with bad date: {day_str!r}")
            continue
        if start <= day < end and available is not None:
            result[day] = bool(available)
    return result


def get_remote_availability_client() -> Optional[RemoteAvailabilityClient]:
    """Client for the configured feed, or None when no feed is configured"""
    if not settings.has_remote_availability_feed:
        return None
    return RemoteAvailabilityClient(
        base_url=settings.remote_availability_url,
        api_key=settings.remote_availability_api_key,
        timeout=settings.remote_availability_timeout_seconds,
    )
