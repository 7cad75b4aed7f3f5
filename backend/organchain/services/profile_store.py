"""
Off-chain profile store client.
Talks to the donor profile REST service (see ``organchain.api.donors``).
Everything here is advisory: callers treat failures as warnings once the
ledger has confirmed.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.errors import (
    AlreadyExists,
    ProfileNotFound,
    ProfileStoreError,
    ProfileStoreUnavailable,
    ProfileValidationError,
)
from .records import ProfileRecord, normalize_identity

logger = logging.getLogger(__name__)


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _error_detail(resp: httpx.Response) -> str:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or resp.text or resp.reason_phrase)


class ProfileStoreClient:
    """HTTP client for the donor profile store."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.PROFILE_STORE_URL
        self.timeout = timeout if timeout is not None else settings.PROFILE_STORE_TIMEOUT
        self.api_key = api_key if api_key is not None else settings.PROFILE_STORE_API_KEY
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers=headers,
            ) as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Profile store %s %s unavailable: %s", method, path, exc)
            raise ProfileStoreUnavailable(f"Profile store unreachable: {exc}") from exc

        if resp.status_code >= 500:
            logger.warning("Profile store %s %s returned %d", method, path, resp.status_code)
            raise ProfileStoreUnavailable(f"Profile store error {resp.status_code}: {_error_detail(resp)}")
        return resp

    def _raise_for_client_error(self, resp: httpx.Response, identity: str) -> None:
        if resp.status_code == 404:
            raise ProfileNotFound(f"No profile for {identity}")
        if resp.status_code == 409:
            raise AlreadyExists(f"Profile for {identity} already exists")
        if resp.status_code in (400, 422):
            raise ProfileValidationError(_error_detail(resp))
        if resp.status_code >= 400:
            raise ProfileStoreError(f"Profile store error {resp.status_code}: {_error_detail(resp)}")

    async def create(self, profile: ProfileRecord) -> ProfileRecord:
        """POST /donors. A duplicate wallet address raises AlreadyExists."""
        resp = await self._request("POST", "/donors", json=profile.to_payload())
        self._raise_for_client_error(resp, profile.identity)
        return ProfileRecord.from_payload(resp.json())

    async def fetch_by_identity(self, identity: str) -> ProfileRecord:
        identity = normalize_identity(identity)
        resp = await self._request("GET", f"/donors/{identity}")
        self._raise_for_client_error(resp, identity)
        return ProfileRecord.from_payload(resp.json())

    async def update_status(self, identity: str, fields: Dict[str, Any]) -> ProfileRecord:
        """PATCH /donors/{identity} with a partial update (snake_case keys accepted)."""
        identity = normalize_identity(identity)
        body = {
            _to_camel(key): value.value if isinstance(value, Enum) else value
            for key, value in fields.items()
        }
        resp = await self._request("PATCH", f"/donors/{identity}", json=body)
        self._raise_for_client_error(resp, identity)
        return ProfileRecord.from_payload(resp.json())

    async def list_profiles(self) -> List[ProfileRecord]:
        resp = await self._request("GET", "/donors")
        self._raise_for_client_error(resp, "*")
        return [ProfileRecord.from_payload(item) for item in resp.json()]
