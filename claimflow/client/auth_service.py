import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import httpx

from claimflow.client.auth_state import AuthState, token_exp
from claimflow.client.errors import ApiError


logger = logging.getLogger(__name__)

# Refresh this long before the access token expires
REFRESH_MARGIN_SECONDS = 5 * 60


class AuthService:
    def __init__(self, http: httpx.AsyncClient, state: AuthState, clock: Callable[[], float] = time.time):
        self.http = http
        self.state = state
        self._clock = clock
        self._refresh_task: Optional[asyncio.Task] = None
        self._auto_refresh: Optional[Union[asyncio.TimerHandle, asyncio.Task]] = None

    async def authenticate(self, email: str, password: str) -> dict:
        self.state.set_loading(True)
        try:
            resp = await self.http.post("/auth/token", json={"email": email, "password": password})
        except httpx.HTTPError as e:
            self.state.set_error(str(e))
            raise
        if resp.status_code >= 400:
            err = ApiError(resp.status_code, _json(resp))
            self.state.set_error(err.message)
            raise err
        data = resp.json()
        self.state.set_tokens(data["user"], data["access_token"], data.get("refresh_token"), data.get("message"))
        return data

    async def refresh_token(self) -> Optional[str]:
        """Refresh the access token; concurrent callers share one in-flight request.

        A cancelled caller stops waiting but leaves the shared refresh running for the others.
        """
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._perform_refresh())
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: asyncio.Future) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _perform_refresh(self) -> Optional[str]:
        body = {"refresh_token": self.state.refresh_token} if self.state.refresh_token else {}
        try:
            resp = await self.http.post("/auth/refresh", json=body)
            if resp.status_code >= 400:
                raise ApiError(resp.status_code, _json(resp), "Token refresh failed")
            data = resp.json()
        except (httpx.HTTPError, ApiError) as e:
            logger.warning("Token refresh error: %s", e)
            self.state.logout()
            return None
        self.state.set_tokens(data["user"], data["access_token"], data.get("refresh_token"), data.get("message"))
        return data["access_token"]

    async def logout(self) -> None:
        token = self.state.access_token
        try:
            if token:
                await self.http.post(
                    "/auth/logout",
                    json={"refresh_token": self.state.refresh_token} if self.state.refresh_token else {},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.warning("Logout error: %s", e)
        finally:
            self.cancel_auto_refresh()
            self.state.logout()

    def is_authenticated(self) -> bool:
        return self.state.is_authenticated and bool(self.state.access_token)

    def is_token_expired(self, token: Optional[str]) -> bool:
        exp = token_exp(token)
        return exp is None or exp < self._clock()

    def token_expiration(self, token: Optional[str]) -> Optional[datetime]:
        exp = token_exp(token)
        return datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None

    def setup_auto_refresh(self) -> Optional[Union[asyncio.TimerHandle, asyncio.Task]]:
        """Schedule a refresh five minutes before expiry, or right away if already inside that window.

        Must be called from within a running event loop.
        """
        exp = token_exp(self.state.access_token)
        if exp is None:
            return None
        self.cancel_auto_refresh()
        loop = asyncio.get_running_loop()
        delay = exp - REFRESH_MARGIN_SECONDS - self._clock()
        if delay > 0:
            self._auto_refresh = loop.call_later(delay, lambda: asyncio.ensure_future(self.refresh_token()))
        else:
            self._auto_refresh = loop.create_task(self.refresh_token())
        return self._auto_refresh

    def cancel_auto_refresh(self) -> None:
        if self._auto_refresh is not None and not (isinstance(self._auto_refresh, asyncio.Task) and self._auto_refresh.done()):
            self._auto_refresh.cancel()
        self._auto_refresh = None


def _json(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return resp.text
