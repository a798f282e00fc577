from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from helpdesk.core.roles import Actor
from helpdesk.core.security import create_access_token
from helpdesk.db import get_session
from helpdesk.models.company import Company
from helpdesk.models.ticket import Ticket
from helpdesk.models.user import Base, User
from helpdesk.services.mail_service import MailPayload
from helpdesk.services.mutation_feed import InMemoryMutationFeed

import helpdesk.models.comment  # noqa: F401
import helpdesk.models.history  # noqa: F401
import helpdesk.models.share  # noqa: F401
import helpdesk.models.notification_setting  # noqa: F401
import helpdesk.models.mail_log  # noqa: F401

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def as_actor(user: User) -> Actor:
    return Actor(id=user.id, role=user.role, company_id=user.company_id)


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@dataclass
class World:
    acme: Company
    globex: Company
    admin: User
    tech: User
    client: User
    other_client: User
    globex_tech: User
    owner: User
    stranger: User
    ticket: Ticket


class FakeSender:
    def __init__(self, ready: bool = True, fail_for: set[str] | None = None) -> None:
        self.ready = ready
        self.fail_for = fail_for or set()
        self.sent: list[MailPayload] = []

    async def send(self, payload: MailPayload) -> None:
        if payload.recipient_email in self.fail_for:
            raise ConnectionRefusedError("smtp down")
        self.sent.append(payload)


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk-test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def world(session) -> World:
    acme = Company(name="Acme")
    globex = Company(name="Globex")
    platform = Company(name="Platform")
    session.add_all([acme, globex, platform])
    await session.flush()

    def user(name, role, company, email=True):
        return User(
            name=name,
            role=role,
            company_id=company.id,
            email=f"{name}@helpdesk-mail.com" if email else None,
        )

    admin = user("ada", "company_admin", acme)
    tech = user("tom", "technician", acme)
    client = user("cleo", "client_user", acme)
    other_client = user("otto", "client_user", acme)
    globex_tech = user("gina", "technician", globex)
    owner = user("olga", "system_owner", platform)
    stranger = user("sam", "auditor", acme)
    session.add_all([admin, tech, client, other_client, globex_tech, owner, stranger])
    await session.flush()

    ticket = Ticket(
        company_id=acme.id,
        title="Printer on fire",
        description="Third floor",
        status="open",
        priority="high",
        created_by=client.id,
        assigned_to=tech.id,
        created_at=T0,
        updated_at=T0,
    )
    session.add(ticket)
    await session.commit()
    return World(acme, globex, admin, tech, client, other_client, globex_tech, owner, stranger, ticket)


@pytest.fixture
def feed():
    return InMemoryMutationFeed()


@pytest_asyncio.fixture
async def client(session_factory, feed):
    from helpdesk.main import app

    async def override_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    app.state.mutation_feed = feed
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
