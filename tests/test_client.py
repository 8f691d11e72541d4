import asyncio
import json
import time

import httpx
import jwt
import pytest

from claimflow.client.api import ClaimFlowClient
from claimflow.client.auth_service import REFRESH_MARGIN_SECONDS, AuthService
from claimflow.client.auth_state import AuthState, token_exp
from claimflow.client.errors import ApiError


USER = {"id": "u1", "name": "Asha", "email": "asha@claimflow.io", "role": "employee"}


def _token(sub="u1", ttl=3600):
    return jwt.encode({"sub": sub, "type": "access", "exp": int(time.time()) + ttl}, "k", algorithm="HS256")


class FakeApi:
    """Routes requests to per-path handlers and records what was called."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def __call__(self, request):
        path = request.url.path.removeprefix("/api/v1")
        self.calls.append((request.method, path, request.headers.get("authorization")))
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        return await handler(request)

    def count(self, method, path):
        return sum(1 for m, p, _ in self.calls if (m, p) == (method, path))


def _client(api, state=None, **kwargs):
    state = state or AuthState()
    return ClaimFlowClient("http://test/api/v1", state=state, transport=httpx.MockTransport(api), **kwargs)


def _signed_in(access="old", refresh="r1"):
    state = AuthState()
    state.set_tokens(USER, access, refresh)
    return state


def test_expired_access_token_is_refreshed_once_and_retried():
    async def stats(request):
        if request.headers.get("authorization") == "Bearer fresh":
            return httpx.Response(200, json={"status_stats": [], "total_claims": 0, "total_amount": 0})
        return httpx.Response(401, json={"detail": "Token expired"})

    async def refresh(request):
        assert json.loads(request.content) == {"refresh_token": "r1"}
        return httpx.Response(200, json={"user": USER, "access_token": "fresh", "refresh_token": "r2"})

    api = FakeApi({("GET", "/claims/stats"): stats, ("POST", "/auth/refresh"): refresh})

    async def main():
        async with _client(api, _signed_in()) as client:
            result = await client.claim_stats()
            return result, client.state

    result, state = asyncio.run(main())
    assert result["total_claims"] == 0
    assert api.count("GET", "/claims/stats") == 2
    assert api.count("POST", "/auth/refresh") == 1
    assert state.access_token == "fresh"
    assert state.refresh_token == "r2"


def test_failed_refresh_ends_session():
    async def forbidden(request):
        return httpx.Response(401, json={"detail": "Token expired"})

    api = FakeApi({("GET", "/claims"): forbidden, ("POST", "/auth/refresh"): forbidden})
    expired = []

    async def main():
        async with _client(api, _signed_in(), on_session_expired=lambda: expired.append(True)) as client:
            client.cache.set("/users", {}, ["cached"], [("User", "LIST")])
            with pytest.raises(ApiError) as exc:
                await client.list_claims()
            return client, exc.value

    client, error = asyncio.run(main())
    assert error.status == 401
    assert error.message == "Token expired"
    assert expired == [True]
    assert client.state.is_authenticated is False
    assert client.state.access_token is None
    assert len(client.cache) == 0
    assert api.count("GET", "/claims") == 1


def test_auth_endpoints_are_not_retried():
    async def bad_login(request):
        return httpx.Response(401, json={"detail": "Invalid email or password"})

    api = FakeApi({("POST", "/auth/token"): bad_login})

    async def main():
        async with _client(api) as client:
            with pytest.raises(ApiError):
                await client.login("asha@claimflow.io", "nope")
            return client.state

    state = asyncio.run(main())
    assert state.error == "Invalid email or password"
    assert state.is_loading is False
    assert api.count("POST", "/auth/refresh") == 0


def test_concurrent_refreshes_share_one_request():
    async def refresh(request):
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"user": USER, "access_token": "fresh"})

    api = FakeApi({("POST", "/auth/refresh"): refresh})

    async def main():
        state = _signed_in()
        async with httpx.AsyncClient(base_url="http://test/api/v1", transport=httpx.MockTransport(api)) as http:
            service = AuthService(http, state)
            return await asyncio.gather(service.refresh_token(), service.refresh_token(), service.refresh_token())

    assert asyncio.run(main()) == ["fresh", "fresh", "fresh"]
    assert api.count("POST", "/auth/refresh") == 1


def test_cancelled_caller_does_not_cancel_shared_refresh():
    async def refresh(request):
        await asyncio.sleep(0.02)
        return httpx.Response(200, json={"user": USER, "access_token": "fresh"})

    api = FakeApi({("POST", "/auth/refresh"): refresh})

    async def main():
        state = _signed_in()
        async with httpx.AsyncClient(base_url="http://test/api/v1", transport=httpx.MockTransport(api)) as http:
            service = AuthService(http, state)
            first = asyncio.ensure_future(service.refresh_token())
            second = asyncio.ensure_future(service.refresh_token())
            await asyncio.sleep(0)
            first.cancel()
            token = await second
            assert first.cancelled()
            return token, state

    token, state = asyncio.run(main())
    assert token == "fresh"
    assert state.access_token == "fresh"
    assert api.count("POST", "/auth/refresh") == 1


def test_queries_are_cached_until_a_mutation_invalidates_them():
    async def list_claims(request):
        return httpx.Response(200, json={"items": [{"id": "c1"}], "total": 1, "page": 1, "size": 20})

    async def get_claim(request):
        return httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})

    async def created(request):
        return httpx.Response(201, json={"id": "c3"})

    api = FakeApi({
        ("GET", "/claims"): list_claims,
        ("GET", "/claims/c1"): get_claim,
        ("PATCH", "/claims/c2"): get_claim,
        ("POST", "/claims"): created,
    })

    async def main():
        async with _client(api, _signed_in()) as client:
            await client.list_claims(status="submitted")
            await client.list_claims(status="submitted")
            await client.get_claim("c1")
            await client.update_claim("c2", {"business_unit": "Alliance"})
            await client.get_claim("c1")
            await client.list_claims(status="submitted")
            await client.create_claim({"category": "Office & Admin"})
            await client.list_claims(status="submitted", refresh=False)
            await client.get_claim("c1", refresh=True)

    asyncio.run(main())
    # The update dropped the list but not the unrelated claim detail
    assert api.count("GET", "/claims") == 3
    assert api.count("GET", "/claims/c1") == 2


def test_requests_send_bearer_token_and_raise_api_errors():
    async def missing(request):
        return httpx.Response(404, json={"detail": "Claim not found"})

    api = FakeApi({("GET", "/claims/nope"): missing})

    async def main():
        async with _client(api, _signed_in(access="tok")) as client:
            with pytest.raises(ApiError) as exc:
                await client.get_claim("nope")
            with pytest.raises(ValueError):
                await client.lookup("secrets")
            return exc.value

    error = asyncio.run(main())
    assert error.status == 404
    assert error.message == "Claim not found"
    assert api.calls == [("GET", "/claims/nope", "Bearer tok")]


def test_logout_clears_state_even_when_server_fails():
    async def boom(request):
        raise httpx.ConnectError("down", request=request)

    api = FakeApi({("POST", "/auth/logout"): boom})

    async def main():
        async with _client(api, _signed_in()) as client:
            client.cache.set("/policy", None, {}, [("Policy", None)])
            await client.logout()
            return client

    client = asyncio.run(main())
    assert client.state.is_authenticated is False
    assert len(client.cache) == 0


def test_auto_refresh_scheduling():
    async def refresh(request):
        return httpx.Response(200, json={"user": USER, "access_token": _token(ttl=7200)})

    api = FakeApi({("POST", "/auth/refresh"): refresh})

    async def main():
        async with httpx.AsyncClient(base_url="http://test/api/v1", transport=httpx.MockTransport(api)) as http:
            state = _signed_in(access=_token(ttl=3600))
            service = AuthService(http, state)
            handle = service.setup_auto_refresh()
            assert isinstance(handle, asyncio.TimerHandle)
            service.cancel_auto_refresh()
            assert handle.cancelled()

            state.set_tokens(USER, _token(ttl=REFRESH_MARGIN_SECONDS - 10))
            task = service.setup_auto_refresh()
            assert isinstance(task, asyncio.Task)
            await task
            return state, service

    state, service = asyncio.run(main())
    assert api.count("POST", "/auth/refresh") == 1
    assert token_exp(state.access_token) > time.time() + 7000
    assert service.is_token_expired(_token(ttl=-10))
    assert not service.is_token_expired(state.access_token)
    assert service.is_token_expired("garbage")
    assert service.token_expiration(None) is None


def test_auth_state_persists_and_drops_expired_sessions(tmp_path):
    path = tmp_path / "auth.json"
    state = AuthState(path)
    state.set_tokens(USER, _token(), "r1", "Welcome")
    state.update_profile(name="Asha R")

    restored = AuthState(path)
    assert restored.load_stored() is True
    assert restored.user["name"] == "Asha R"
    assert restored.refresh_token == "r1"
    assert restored.is_authenticated

    assert AuthState(path).load_stored(now=time.time() + 7200) is False
    assert not path.exists()


def test_auth_state_handles_missing_and_corrupt_storage(tmp_path):
    path = tmp_path / "auth.json"
    assert AuthState(path).load_stored() is False
    path.write_text("{not json", encoding="utf-8")
    state = AuthState(path)
    assert state.load_stored() is False
    assert state.is_initialized
    assert not path.exists()
