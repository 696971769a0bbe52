from contextlib import contextmanager

from fastapi.testclient import TestClient

from app.api.v1.endpoints.notifications import get_notification_dispatcher
from app.core.database import get_db
from app.core.errors import ExternalServiceError
from app.main import app
from app.services.notifications import DispatchResult


class _StubQuery:
    def __init__(self, rows):
        self._rows = rows

    def filter(self, *args, **kwargs):
        return self

    def first(self):
        return None

    def all(self):
        return self._rows


class _StubSession:
    def __init__(self, token_rows=()):
        self.token_rows = list(token_rows)
        self.added = []
        self.statements = []

    def query(self, *args, **kwargs):
        return _StubQuery(self.token_rows)

    def add(self, row):
        self.added.append(row)

    def refresh(self, row):
        pass

    def execute(self, statement, params=None):
        self.statements.append((str(statement), params))

    def commit(self):
        pass

    def rollback(self):
        pass


class _StubDispatcher:
    def __init__(self, error=None):
        self.error = error
        self.dispatched = []

    async def send_single(self, token, title, body, data=None):
        if self.error is not None:
            raise self.error
        return f"projects/p/messages/{token}"

    async def dispatch(self, tokens, title, body, data=None):
        self.dispatched.append(set(tokens))
        if self.error is not None:
            raise self.error
        tokens = sorted(tokens)
        return DispatchResult(sent=len(tokens) - 1, message_ids=tokens[1:], dropped=tokens[:1])


@contextmanager
def _client(session, dispatcher):
    app.dependency_overrides.clear()

    def _override_get_db():
        yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


BROADCAST = {"user_ids": ["user-1", "user-2"], "title": "Promo", "body": "Cashback"}


def test_broadcast_requires_admin(auth_headers):
    dispatcher = _StubDispatcher()
    with _client(_StubSession(), dispatcher) as client:
        res = client.post("/api/v1/notifications/broadcast", json=BROADCAST, headers=auth_headers())
    assert res.status_code == 403
    assert dispatcher.dispatched == []


def test_broadcast_resolves_tokens_and_reports_counts(auth_headers):
    session = _StubSession(token_rows=[("tok-a",), ("tok-b",), ("tok-b",), ("tok-c",)])
    dispatcher = _StubDispatcher()
    with _client(session, dispatcher) as client:
        res = client.post("/api/v1/notifications/broadcast", json=BROADCAST, headers=auth_headers(role="admin"))

    assert res.status_code == 200
    assert dispatcher.dispatched == [{"tok-a", "tok-b", "tok-c"}]
    assert res.json() == {"recipients": 3, "sent": 2, "dropped": 1, "message_ids": ["tok-b", "tok-c"]}
    assert any("lab_fun_audit" in statement for statement, _ in session.statements)


def test_broadcast_failure_is_bad_gateway(auth_headers):
    session = _StubSession(token_rows=[("tok-a",)])
    dispatcher = _StubDispatcher(error=ExternalServiceError("fcm send error", upstream_status=500))
    with _client(session, dispatcher) as client:
        res = client.post("/api/v1/notifications/broadcast", json=BROADCAST, headers=auth_headers(role="admin"))
    assert res.status_code == 502
    assert res.json()["detail"] == "fcm send error"


def test_send_single(auth_headers):
    with _client(_StubSession(), _StubDispatcher()) as client:
        res = client.post(
            "/api/v1/notifications/send",
            json={"token": "tok-a", "title": "Hi", "body": "There"},
            headers=auth_headers(),
        )
    assert res.status_code == 200
    assert res.json() == {"name": "projects/p/messages/tok-a"}


def test_update_fcm_token_registers_device(auth_headers):
    session = _StubSession()
    with _client(session, _StubDispatcher()) as client:
        res = client.patch(
            "/api/v1/notifications/fcm-token",
            json={"fcm_token": "tok-new", "platform": "android"},
            headers=auth_headers(),
        )
    assert res.status_code == 200
    assert res.json() == {"message": "FCM token updated"}
    assert session.added[0].token == "tok-new"
    assert session.added[0].user_id == "user-1"
