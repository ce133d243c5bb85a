import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, enable_sqlite_write_locks, get_db
from main import app
from models.anon_user import AnonUser
from routers import rate_limit
from services.accounts import hash_password
from services.session_token import create_session_token


ADMIN_EMAIL = "moderator@example.com"


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture(autouse=True)
def ledger_settings(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", [ADMIN_EMAIL])
    monkeypatch.setattr(settings, "ADMIN_GRANT_MAX_TOKENS", 1_000_000)
    monkeypatch.setattr(settings, "IDENTITY_PROVIDER_SECRET", "test-identity-provider-secret")
    monkeypatch.setattr(settings, "IDENTITY_PROVIDER_ISSUER", "")
    monkeypatch.setattr(settings, "IDENTITY_PROVIDER_AUDIENCE", "")
    monkeypatch.setattr(settings, "JWT_SECRET", "test-session-secret-at-least-24-chars")
    monkeypatch.setattr(settings, "DAILY_REWARD_TOKENS", 50)
    monkeypatch.setattr(settings, "DAILY_REWARD_INTERVAL_HOURS", 24)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "ledger.db"
    engine = enable_sqlite_write_locks(create_async_engine(f"sqlite+aiosqlite:///{db_path}"))
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def provider_headers():
    """Build Authorization headers carrying a third-party identity token."""

    def _headers(subject_id: str = "tp-user", email: str = "member@example.com"):
        claims = {"sub": subject_id}
        if email:
            claims["email"] = email
        token = jwt.encode(claims, settings.IDENTITY_PROVIDER_SECRET, algorithm=settings.IDENTITY_PROVIDER_ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers(provider_headers):
    return provider_headers("admin-user", ADMIN_EMAIL)


@pytest.fixture
def make_anon_account(session_maker):
    """Insert an anonymous account and return ``(account_id, auth_headers)``."""

    async def _make(username: str = "anon-tester", password: str = "correct-horse", **fields):
        account = AnonUser(
            username=username,
            password_hash=hash_password(password),
            previous_usernames=fields.pop("previous_usernames", []),
            purchased_solid_colors=fields.pop("purchased_solid_colors", []),
            purchased_gradient_colors=fields.pop("purchased_gradient_colors", []),
            purchased_gradient_color_slots=fields.pop("purchased_gradient_color_slots", 0),
            animated_gradient_enabled=fields.pop("animated_gradient_enabled", False),
            gif_profile_enabled=fields.pop("gif_profile_enabled", False),
            **fields,
        )
        async with session_maker() as session:
            session.add(account)
            await session.commit()
            account_id = account.id
        token = create_session_token(account_id, username)["token"]
        return account_id, {"Authorization": f"Bearer {token}"}

    return _make
