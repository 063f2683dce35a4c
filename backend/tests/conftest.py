"""
Pytest Configuration and Fixtures

Services run against an in-memory mongomock database with a frozen clock,
a recording notifier and a stub TOTP verifier.
"""

import os
import tempfile

os.environ.setdefault("SIGNFLOW_LOGS_PATH", os.path.join(tempfile.gettempdir(), "signflow-test-logs"))
os.environ.setdefault("SIGNFLOW_SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import mongomock
import pytest
from fastapi.testclient import TestClient

from signflow.config.settings import Settings
from signflow.domain.errors import ValidationError
from signflow.domain.models import ActorContext
from signflow.main import create_app
from signflow.services.container import ServiceContainer
from signflow.services.notification_service import NotificationPort
from signflow.services.totp_service import TotpVerifier
from signflow.utils.time import Clock

VALID_TOTP = "123456"


class FrozenClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


class RecordingNotifier(NotificationPort):
    def __init__(self):
        self.events: List[Dict[str, Any]] = []
        self.deliver = True

    def emit(self, event, request_id, recipients, payload=None) -> bool:
        self.events.append({
            "event": event,
            "request_id": request_id,
            "recipients": list(recipients),
            "payload": payload or {},
        })
        return self.deliver

    def of(self, event) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event"] == event]


class StubTotpVerifier(TotpVerifier):
    def verify(self, user_id: str, code: str, purpose: str = "signing") -> None:
        if code != VALID_TOTP:
            raise ValidationError("Invalid TOTP code", details={"field": "totp_code"})


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config(tmp_path):
    return Settings(
        logs_path=str(tmp_path / "logs"),
        scheduler_enabled=False,
        mongo_db="signflow_test",
        # mongomock read-modify-writes are not atomic across threads
        bulk_max_workers=1,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["signflow_test"]


@pytest.fixture
def container(db, config, clock, notifier):
    return ServiceContainer.build(
        db, config, clock=clock, notifier=notifier, totp_verifier=StubTotpVerifier()
    )


@pytest.fixture
def alice():
    return ActorContext(user_id="user-alice", email="alice@example.com", display_name="Alice")


@pytest.fixture
def bob():
    return ActorContext(user_id="user-bob", email="bob@example.com", display_name="Bob")


@pytest.fixture
def carol():
    return ActorContext(user_id="user-carol", email="carol@example.com", display_name="Carol")


@pytest.fixture
def mallory():
    return ActorContext(user_id="user-mallory", email="mallory@example.com")


def request_payload(*emails: str, **overrides) -> Dict[str, Any]:
    payload = {
        "document_id": "doc-1",
        "title": "Master services agreement",
        "signers": [{"signer_email": email} for email in emails],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_request(container, alice):
    """Create a request as alice (by default) and return it with its signers"""
    def _create(*emails: str, actor: ActorContext = None, **overrides):
        result = container.requests.create_request(
            actor or alice, request_payload(*(emails or ("bob@example.com",)), **overrides)
        )
        assert result.success, result.error
        request = result.data
        return request, container.store.get_signers(request.request_id)
    return _create


@pytest.fixture
def app(container):
    return create_app(container=container, config=container.config)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def headers_for(actor: ActorContext) -> Dict[str, str]:
    return {"X-User-Id": actor.user_id, "X-User-Email": actor.email}
