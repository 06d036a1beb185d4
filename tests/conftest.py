from unittest.mock import Mock

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import smile_api.models  # noqa: F401
from smile_api.database import Base, create_db_engine
from smile_api.services.llm.base import LLMProvider, LLMResponse
from smile_api.services.twilio_service import TwilioWhatsAppChannel
from smile_api.services.webhook_orchestrator import WebhookOrchestrator

TEST_SYSTEM_PROMPT = "You are a test assistant."


class FakeProvider(LLMProvider):
    """Records every call; replies with a fixed text or raises."""

    def __init__(self, reply="hi there", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def generate(self, messages, model=None, temperature=0.7, max_tokens=200, timeout_seconds=None):
        self.calls.append({"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model=model or "fake")


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_orchestrator(session_factory):
    def _make(provider, auth_token="", history_limit=10, reply_mode="twiml", messaging_client=None):
        channel = TwilioWhatsAppChannel(auth_token=auth_token, reply_mode=reply_mode, messaging_client=messaging_client)
        return WebhookOrchestrator(
            session_factory=session_factory,
            llm_provider=provider,
            channels={channel.name: channel},
            system_prompt=TEST_SYSTEM_PROMPT,
            history_limit=history_limit,
        )

    return _make


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def make_provider():
    return FakeProvider
