from __future__ import annotations

import asyncio
import logging
from typing import Any, Final
from urllib.parse import quote

import requests

from .errors import AuthenticationFailure, UpstreamFailure

log: Final = logging.getLogger("vetting-bot")

DEFAULT_TIMEOUT: Final[float] = 10.0
VERIFICATION_METHOD: Final[str] = "manual_discord"
_REAUTH_STATUSES: Final = frozenset({401, 403})


def is_age_vetted(record: dict[str, Any] | None) -> bool:
    """Return ``True`` when a verification record carries a positive vetting flag."""
    if not record:
        return False
    flags = record.get("verified_flags") or {}
    return bool(flags.get("age_vetted") or flags.get("vetted"))


class VeyraClient:
    """HTTP/JSON client for the Veyra verification service.

    Requests run in a worker thread through a shared ``requests.Session``.
    A 401 or 403 triggers exactly one re-login followed by one retry of the
    original call; concurrent callers that hit the same expired token share
    a single re-login.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.token: str | None = None
        self._session = session or requests.Session()
        self._auth_lock = asyncio.Lock()

    async def login(self) -> str:
        url = f"{self.base_url}/api/auth/login"
        try:
            response = await asyncio.to_thread(
                self._session.post,
                url,
                json={"username": self.username, "password": self.password},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error("Failed to login to Veyra API: %s", exc)
            raise UpstreamFailure(f"Login request failed: {exc}") from exc

        if not response.ok:
            log.error("Failed to login to Veyra API: HTTP %s", response.status_code)
            raise AuthenticationFailure(
                f"Login failed: {response.status_code}", status=response.status_code
            )

        try:
            token = response.json().get("token")
        except ValueError as exc:
            raise UpstreamFailure("Login response was not JSON") from exc
        if not token:
            raise AuthenticationFailure("Login response did not include a token")

        self.token = token
        log.info("Successfully logged into Veyra API")
        return token

    async def close(self) -> None:
        await asyncio.to_thread(self._session.close)

    async def get_verification_by_ckey(self, ckey: str) -> dict[str, Any] | None:
        response = await self._request(
            "GET", f"/api/v1/verify/ckey/{quote(ckey, safe='')}"
        )
        if response.status_code == 404:
            return None
        return self._json_or_raise(response, "fetch verification")

    async def create_or_update_verification(
        self, discord_id: str, ckey: str, flags: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/api/v1/verify",
            payload={
                "discord_id": discord_id,
                "ckey": ckey,
                "verified_flags": flags or {},
                "verification_method": VERIFICATION_METHOD,
            },
        )
        return self._json_or_raise(response, "create/update verification")

    async def _ensure_token(self) -> None:
        if self.token:
            return
        async with self._auth_lock:
            if not self.token:
                await self.login()

    async def _reauthenticate(self, stale_token: str | None) -> None:
        async with self._auth_lock:
            if self.token != stale_token:
                log.debug("Skipping re-authentication (token already refreshed)")
                return
            self.token = None
            await self.login()

    async def _request(
        self, method: str, path: str, *, payload: dict[str, Any] | None = None
    ) -> requests.Response:
        await self._ensure_token()
        url = f"{self.base_url}{path}"

        for attempt in range(2):
            token = self.token
            try:
                response = await asyncio.to_thread(
                    self._session.request,
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                log.error("Veyra API %s %s failed: %s", method, path, exc)
                raise UpstreamFailure(f"{method} {path} failed: {exc}") from exc

            if response.status_code in _REAUTH_STATUSES and attempt == 0:
                log.warning(
                    "Veyra API %s for %s %s, attempting re-authentication",
                    response.status_code,
                    method,
                    path,
                )
                await self._reauthenticate(token)
                continue
            return response

        return response

    @staticmethod
    def _json_or_raise(response: requests.Response, action: str) -> dict[str, Any]:
        if not response.ok:
            log.error("Failed to %s: HTTP %s", action, response.status_code)
            raise UpstreamFailure(
                f"Failed to {action}: {response.status_code}",
                status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailure(f"Failed to {action}: response was not JSON") from exc


__all__ = ["VeyraClient", "is_age_vetted"]
