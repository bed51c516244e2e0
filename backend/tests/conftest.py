import os
from collections.abc import AsyncIterator
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import Settings
from middleware.rate_limit import limiter
from models import Base, User, UserRole
from services.auth_service import AuthService

limiter.enabled = False


class FakeProvider:
    """Canned responses for outbound provider calls, matched by method, URL and query params.

    Unmatched requests get a 404 so a missing route shows up as a failed asset lookup.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, httpx.URL, dict, Any]] = []
        self.calls: list[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        json: Any = None,
        status: int = 200,
        params: dict | None = None,
        error: Exception | None = None,
    ) -> None:
        response = error if error is not None else httpx.Response(status, json=json)
        self.routes.append((method, httpx.URL(url), params or {}, response))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        for method, url, params, response in self.routes:
            if request.method != method:
                continue
            if request.url.host != url.host or request.url.path != url.path:
                continue
            if any(request.url.params.get(k) != v for k, v in params.items()):
                continue
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(404, json={"error": "no route"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def called(self, url: str, method: str | None = None) -> list[httpx.Request]:
        target = httpx.URL(url)
        return [
            r for r in self.calls
            if r.url.host == target.host
            and r.url.path == target.path
            and (method is None or r.method == method)
        ]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        debug=False,
        database_url="sqlite+aiosqlite://",
        app_url="http://app.test",
        jwt_secret="test-secret",
        meta_app_id="meta-app-id",
        meta_app_secret="meta-app-secret",
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        tiktok_client_key="tiktok-key",
        tiktok_client_secret="tiktok-secret",
        shopify_client_id="shopify-client-id",
        shopify_client_secret="shopify-client-secret",
        shopify_shop_domain="acme",
    )


@pytest.fixture
def fake() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def http(fake: FakeProvider) -> AsyncIterator[httpx.AsyncClient]:
    async with fake.client() as client:
        yield client


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def admin(db) -> User:
    user = User(
        email="admin@agency.com",
        password_hash=AuthService.hash_password("s3cretpass"),
        full_name="Agency Admin",
        role=UserRole.ADMIN,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user
