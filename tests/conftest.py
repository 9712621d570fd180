import asyncio
import os
from datetime import datetime, timedelta
from types import SimpleNamespace

os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import anthropic
import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base, get_db, get_session_factory
from models import AuthSession, GeneratedResponse, Profile


def text_event(text):
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


def provider_events(fragments):
    events = [SimpleNamespace(type="message_start"), SimpleNamespace(type="content_block_start")]
    events += [text_event(f) for f in fragments]
    events += [SimpleNamespace(type="content_block_stop"), SimpleNamespace(type="message_stop")]
    return events


def connection_error():
    return anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


class FakeStream:
    def __init__(self, events, fail_after=None):
        self.events = events
        self.fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for i, event in enumerate(self.events):
            if self.fail_after is not None and i == self.fail_after:
                raise connection_error()
            yield event

    async def close(self):
        self.closed = True


class FakeMessages:
    def __init__(self, fragments, fail_on_open=False, fail_after=None):
        self.fragments = fragments
        self.fail_on_open = fail_on_open
        self.fail_after = fail_after
        self.calls = []
        self.streams = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail_on_open:
            raise connection_error()
        stream = FakeStream(provider_events(self.fragments), fail_after=self.fail_after)
        self.streams.append(stream)
        return stream


class FakeLLMClient:
    def __init__(self, fragments=("Thank you ", "for visiting!"), **kwargs):
        self.messages = FakeMessages(list(fragments), **kwargs)


def collect(relay):
    async def _run():
        return [text async for text in relay.fragments()]
    return asyncio.run(_run())


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def llm_client():
    return FakeLLMClient()


@pytest.fixture
def client(session_factory, llm_client):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[get_session_factory] = lambda: session_factory
    main.app.dependency_overrides[main.get_llm_client] = lambda: llm_client
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def add_user(db, user_id="user-1", token="token-1", status="free", **fields):
    profile = Profile(id=user_id, email=f"{user_id}@example.com", subscription_status=status, **fields)
    db.add(profile)
    db.add(AuthSession(token=token, user_id=user_id, expires_at=datetime.utcnow() + timedelta(days=1)))
    db.commit()
    return profile


def add_responses(db, user_id, count, created_at=None):
    for i in range(count):
        db.add(GeneratedResponse(
            user_id=user_id,
            review=f"review {i}",
            rating=4,
            tone="friendly",
            response=f"reply {i}",
            created_at=created_at or datetime.utcnow(),
        ))
    db.commit()


def auth_header(token="token-1"):
    return {"Authorization": f"Bearer {token}"}
