"""
Spotify Client Credentials トークンのキャッシュ。
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from lib.playlist_stats.errors import AuthError
from lib.playlist_stats.models import Credential

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
# Tokens are treated as expired this many seconds early
TOKEN_EXPIRY_MARGIN_S = 60.0


class CredentialCache:
    """Hands out a cached bearer token, refreshing it shortly before expiry.

    Concurrent callers that miss the cache share one exchange (lock + re-check).
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_url: str = SPOTIFY_TOKEN_URL,
        clock: Callable[[], float] = time.monotonic,
        margin_s: float = TOKEN_EXPIRY_MARGIN_S,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.margin_s = margin_s
        self._clock = clock
        self._timeout = httpx.Timeout(timeout_s)
        self._transport = transport
        self._credential: Optional[Credential] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _loop_lock(self) -> asyncio.Lock:
        # asyncio.Lock binds to the loop it is first contended on
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _cached(self) -> Optional[Credential]:
        cred = self._credential
        if cred is not None and self._clock() < cred.expires_at - self.margin_s:
            return cred
        return None

    async def get_token(self) -> Credential:
        cred = self._cached()
        if cred is not None:
            return cred
        async with self._loop_lock():
            cred = self._cached()
            if cred is not None:
                return cred
            cred = await self._exchange()
            self._credential = cred
            return cred

    def clear(self) -> None:
        self._credential = None

    async def _exchange(self) -> Credential:
        if not self.client_id or not self.client_secret:
            raise AuthError(
                "Spotify client credentials are not set. "
                "Please set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET."
            )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.token_url,
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self.client_secret),
                )
        except httpx.HTTPError as e:
            logger.error(f"[Auth] token request failed: {e}")
            raise AuthError(f"Token request failed: {e}") from e

        if not resp.is_success:
            logger.error(f"[Auth] token request rejected status={resp.status_code} body={resp.text[:200]}")
            raise AuthError(
                f"Token request failed ({resp.status_code}): {resp.text}",
                status=resp.status_code,
            )

        try:
            data = resp.json()
            access_token = data["access_token"]
            expires_in = float(data.get("expires_in") or 3600)
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(f"Malformed token response: {e}", status=resp.status_code) from e

        logger.info(f"[Auth] obtained token expires_in={expires_in:.0f}s")
        return Credential(access_token=access_token, expires_at=self._clock() + expires_in)
