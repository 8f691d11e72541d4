"""Async client for the ClaimFlow REST API.

Every request carries the bearer token from :class:`AuthState`. A 401 or 403
triggers one token refresh and one retry; if the refresh fails the session is
cleared and ``on_session_expired`` is called. Query methods cache their results
under resource tags and mutations invalidate the tags they affect.
"""
import logging
from datetime import date
from typing import Any, Callable, Iterable, Optional

import httpx

from claimflow.client.auth_service import AuthService
from claimflow.client.auth_state import AuthState
from claimflow.client.cache import TagLike, TaggedCache
from claimflow.client.errors import ApiError


logger = logging.getLogger(__name__)

# Auth endpoints answer 401 for bad credentials; retrying them would loop
_NO_RETRY_PATHS = {"/auth/token", "/auth/refresh", "/auth/logout"}


def _clean(params: Optional[dict]) -> dict:
    return {k: v for k, v in (params or {}).items() if v not in (None, "")}


class ClaimFlowClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000/api/v1",
        state: Optional[AuthState] = None,
        on_session_expired: Optional[Callable[[], Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.http = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport, timeout=timeout)
        self.state = state or AuthState()
        self.auth = AuthService(self.http, self.state)
        self.cache = TaggedCache()
        self.on_session_expired = on_session_expired

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        self.auth.cancel_auto_refresh()
        await self.http.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.state.access_token:
            headers["Authorization"] = f"Bearer {self.state.access_token}"
        return await self.http.request(method, path, headers=headers, **kwargs)

    async def request(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._send(method, path, **kwargs)
        if resp.status_code in (401, 403) and path not in _NO_RETRY_PATHS:
            logger.info("%s %s returned %s, refreshing token", method, path, resp.status_code)
            token = await self.auth.refresh_token()
            if not token:
                self.state.logout()
                self.cache.clear()
                if self.on_session_expired is not None:
                    self.on_session_expired()
                raise ApiError(resp.status_code, _body(resp))
            resp = await self._send(method, path, **kwargs)
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, _body(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _query(self, path: str, params: Optional[dict], provides: Callable[[Any], Iterable[TagLike]], refresh: bool = False) -> Any:
        params = _clean(params)
        if not refresh and self.cache.has(path, params):
            return self.cache.get(path, params)
        result = await self.request("GET", path, params=params or None)
        self.cache.set(path, params, result, provides(result))
        return result

    async def _mutate(self, method: str, path: str, invalidates: Iterable[TagLike], **kwargs) -> Any:
        result = await self.request(method, path, **kwargs)
        self.cache.invalidate(invalidates)
        return result

    # auth

    async def login(self, email: str, password: str) -> dict:
        data = await self.auth.authenticate(email, password)
        self.cache.clear()
        return data

    async def logout(self) -> None:
        await self.auth.logout()
        self.cache.clear()

    async def me(self) -> dict:
        user = await self.request("GET", "/auth/me")
        self.state.set_user(user)
        return user

    async def revoke_sessions(self, user_id: str) -> dict:
        return await self._mutate("POST", f"/auth/revoke/{user_id}", [("User", user_id)])

    # users

    async def list_users(self, role: Optional[str] = None, is_active: Optional[bool] = None, refresh: bool = False) -> list:
        return await self._query(
            "/users",
            {"role": role, "is_active": is_active},
            lambda rows: [("User", "LIST"), *[("User", u["id"]) for u in rows]],
            refresh,
        )

    async def get_user(self, user_id: str, refresh: bool = False) -> dict:
        return await self._query(f"/users/{user_id}", None, lambda u: [("User", user_id)], refresh)

    async def create_user(self, payload: dict) -> dict:
        return await self._mutate("POST", "/users", [("User", "LIST")], json=payload)

    async def update_user(self, user_id: str, changes: dict) -> dict:
        user = await self._mutate("PATCH", f"/users/{user_id}", [("User", user_id), ("User", "LIST")], json=changes)
        if self.state.user and self.state.user.get("id") == user_id:
            self.state.update_profile(**user)
        return user

    async def deactivate_user(self, user_id: str) -> dict:
        return await self._mutate("PATCH", f"/users/{user_id}/deactivate", [("User", user_id), ("User", "LIST")])

    async def reset_password(self, user_id: str, password: str) -> dict:
        return await self._mutate("PATCH", f"/users/{user_id}/reset-password", [("User", user_id)], json={"password": password})

    async def list_supervisors(self, refresh: bool = False) -> list:
        return await self._query("/users/supervisors", None, lambda rows: [("User", "LIST")], refresh)

    async def employee_names(self, refresh: bool = False) -> list:
        return await self._query("/users/employee-names", None, lambda rows: [("User", "LIST")], refresh)

    # claims

    async def list_claims(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        employee_id: Optional[str] = None,
        page: int = 1,
        size: int = 20,
        refresh: bool = False,
    ) -> dict:
        return await self._query(
            "/claims",
            {"status": status, "category": category, "employee_id": employee_id, "page": page, "size": size},
            lambda res: [("Claim", "LIST"), *[("Claim", c["id"]) for c in res["items"]]],
            refresh,
        )

    async def get_claim(self, claim_id: str, refresh: bool = False) -> dict:
        return await self._query(f"/claims/{claim_id}", None, lambda c: [("Claim", claim_id)], refresh)

    async def claim_stats(self, refresh: bool = False) -> dict:
        return await self._query("/claims/stats", None, lambda s: [("Claim", "LIST")], refresh)

    async def claim_documents(self, claim_id: str, refresh: bool = False) -> dict:
        return await self._query(f"/claims/{claim_id}/documents", None, lambda d: [("Claim", claim_id), ("Policy", None)], refresh)

    async def create_claim(self, payload: dict) -> dict:
        return await self._mutate("POST", "/claims", [("Claim", "LIST")], json=payload)

    async def update_claim(self, claim_id: str, changes: dict) -> dict:
        return await self._mutate("PATCH", f"/claims/{claim_id}", [("Claim", claim_id), ("Claim", "LIST")], json=changes)

    async def delete_claim(self, claim_id: str) -> dict:
        return await self._mutate("DELETE", f"/claims/{claim_id}", [("Claim", claim_id), ("Claim", "LIST")])

    async def _claim_decision(self, endpoint: str, claim_id: str, action: str, notes: Optional[str], reason: Optional[str]) -> dict:
        return await self._mutate(
            "POST",
            f"/claims/{claim_id}/{endpoint}",
            [("Claim", claim_id), ("Claim", "LIST")],
            json={"action": action, "notes": notes, "reason": reason},
        )

    async def approve_claim(self, claim_id: str, action: str = "approve", notes: Optional[str] = None, reason: Optional[str] = None) -> dict:
        return await self._claim_decision("approve", claim_id, action, notes, reason)

    async def finance_approve_claim(self, claim_id: str, action: str = "approve", notes: Optional[str] = None, reason: Optional[str] = None) -> dict:
        return await self._claim_decision("finance-approve", claim_id, action, notes, reason)

    async def executive_approve_claim(self, claim_id: str, action: str = "approve", notes: Optional[str] = None, reason: Optional[str] = None) -> dict:
        return await self._claim_decision("executive-approve", claim_id, action, notes, reason)

    async def mark_claim_paid(self, claim_id: str, channel: str, reference: Optional[str] = None) -> dict:
        return await self._mutate(
            "POST",
            f"/claims/{claim_id}/mark-paid",
            [("Claim", claim_id), ("Claim", "LIST")],
            json={"channel": channel, "reference": reference},
        )

    async def upload_attachment(
        self,
        claim_id: str,
        filename: str,
        content: bytes,
        mime: str = "application/octet-stream",
        label: Optional[str] = None,
        line_item_index: Optional[int] = None,
    ) -> dict:
        data = _clean({"label": label, "line_item_index": line_item_index})
        return await self._mutate(
            "POST",
            f"/claims/{claim_id}/upload",
            [("Claim", claim_id)],
            files={"file": (filename, content, mime)},
            data={k: str(v) for k, v in data.items()},
        )

    # leaves

    async def list_leaves(
        self,
        status: Optional[str] = None,
        type: Optional[str] = None,
        employee_id: Optional[str] = None,
        year: Optional[int] = None,
        page: int = 1,
        limit: int = 10,
        refresh: bool = False,
    ) -> dict:
        return await self._query(
            "/leaves",
            {"status": status, "type": type, "employee_id": employee_id, "year": year, "page": page, "limit": limit},
            lambda res: [("Leave", "LIST"), *[("Leave", l["id"]) for l in res["leaves"]]],
            refresh,
        )

    async def create_leave(self, payload: dict) -> dict:
        return await self._mutate("POST", "/leaves", [("Leave", "LIST")], json=payload)

    async def update_leave(self, leave_id: str, changes: dict) -> dict:
        return await self._mutate("PATCH", f"/leaves/{leave_id}", [("Leave", leave_id), ("Leave", "LIST")], json=changes)

    async def delete_leave(self, leave_id: str) -> dict:
        return await self._mutate("DELETE", f"/leaves/{leave_id}", [("Leave", leave_id), ("Leave", "LIST")])

    async def pending_leaves(self, refresh: bool = False) -> list:
        return await self._query("/leaves/pending", None, lambda rows: [("Leave", "LIST")], refresh)

    async def leave_analytics(self, period: str = "year", year: Optional[int] = None, month: Optional[int] = None, refresh: bool = False) -> dict:
        return await self._query(
            "/leaves/analytics", {"period": period, "year": year, "month": month}, lambda res: [("Leave", "LIST")], refresh
        )

    async def leaves_today(self, refresh: bool = False) -> dict:
        return await self._query("/leaves/today", None, lambda res: [("Leave", "LIST")], refresh)

    async def leaves_in_range(self, start_date: date, end_date: date, status: Optional[str] = "approved", refresh: bool = False) -> dict:
        return await self._query(
            "/leaves/range",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat(), "status": status},
            lambda res: [("Leave", "LIST")],
            refresh,
        )

    async def bulk_upload_leaves(self, rows: list[dict]) -> dict:
        return await self._mutate("POST", "/leaves/bulk", [("Leave", "LIST")], json={"leaves": rows})

    async def decide_leave(self, leave_id: str, action: str, notes: Optional[str] = None, rejection_reason: Optional[str] = None) -> dict:
        return await self._mutate(
            "POST",
            f"/leaves/{leave_id}/approve",
            [("Leave", leave_id), ("Leave", "LIST")],
            json={"action": action, "notes": notes, "rejection_reason": rejection_reason},
        )

    # policy, lookups, dashboard

    async def get_policy(self, refresh: bool = False) -> dict:
        return await self._query("/policy", None, lambda p: [("Policy", None)], refresh)

    async def update_policy(self, changes: dict) -> dict:
        return await self._mutate("PATCH", "/policy", [("Policy", None)], json=changes)

    async def lookup(self, name: str) -> Any:
        if name not in {"categories", "line-item-types", "leave-types", "business-units"}:
            raise ValueError(f"Unknown lookup: {name}")
        return await self.request("GET", f"/lookups/{name}")

    async def dashboard_summary(self, refresh: bool = False) -> dict:
        return await self._query("/dashboard/summary", None, lambda s: [("Claim", "LIST"), ("Leave", "LIST")], refresh)


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
