"""
Shared fixtures for the classdesk test suite.

The environment is pinned before anything from classdesk is imported: the
config module reads it once at import time.
"""
import os

test_env_vars = {
    'REG_BACKEND': 'memory',
    'GATEWAY': 'mock',
    'MOCK_SECRET': 'test-secret',
    'MOCK_WEBHOOK_URL': 'http://testserver/api/mock-webhook',
    'MAIL_BACKEND': 'console',
    'EMAIL_USER': '',
    'OPERATOR_EMAIL': 'ops@example.com',
    'ADMIN_USERNAME': 'admin',
    'ADMIN_PASSWORD': 'test-password',
    'SESSION_SECRET': 'test-session-secret',
    'PROGRAM_FEE': '9900',
    'PROGRAM_CURRENCY': 'INR',
    'LOG_LEVEL': 'DEBUG',
}
for key, value in test_env_vars.items():
    os.environ[key] = value

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from classdesk.emails import Notifier  # noqa: E402
from classdesk.errors import GatewayError  # noqa: E402
from classdesk.gateways import MockPay  # noqa: E402
from classdesk.model.registration import new_store  # noqa: E402
from classdesk.model.registration._memory import \
    MemoryRegistrationStore  # noqa: E402
from classdesk.service import RegistrationService  # noqa: E402

SECRET = 'test-secret'
OPERATOR = 'ops@example.com'


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, mail):
        self.sent.append(mail)


class FailingMailer:
    def __init__(self):
        self.attempts = 0

    async def send(self, mail):
        self.attempts += 1
        raise ConnectionRefusedError("smtp down")


class CountingMockPay(MockPay):
    """MockPay that counts order creations and can hand out fixed ids."""

    def __init__(self, order_ids=None, error=None):
        super().__init__(secret=SECRET)
        self.calls = 0
        self.order_ids = list(order_ids or [])
        self.error = error

    async def create_order(self, reg, amount, currency):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.order_ids:
            return {"order_id": self.order_ids.pop(0), "extra": {}}
        return await super().create_order(reg, amount, currency)


def gateway_down():
    return GatewayError("SERVER_ERROR", "upstream unavailable")


@pytest.fixture
def store():
    return MemoryRegistrationStore()


@pytest.fixture
def adapter():
    return CountingMockPay()


@pytest.fixture
def service(store, adapter):
    return RegistrationService(store, adapter, amount=9900, currency="INR")


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def notifier(mailer):
    return Notifier(mailer, operator_email=OPERATOR)


@pytest.fixture(params=["memory", "sql", "redis"])
async def any_store(request, tmp_path):
    if request.param == "sql":
        s = await new_store(
            "sql", database_url=f"sqlite:///{tmp_path / 'classdesk.db'}"
        )
    elif request.param == "redis":
        redis_url = os.environ.get("TEST_REDIS_URL")
        if not redis_url:
            pytest.skip("TEST_REDIS_URL not set")
        s = await new_store("redis", redis_url=redis_url)
        await s.r.flushdb()
    else:
        s = await new_store("memory")
    yield s
    await s.close()


@pytest.fixture
def client(mailer):
    from classdesk.server import app

    with TestClient(app) as c:
        app.state.notifier = Notifier(mailer, operator_email=OPERATOR)
        # deliver mock webhooks straight back into the app
        old_http = app.state.http
        app.state.http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        )
        c.portal.call(old_http.aclose)
        yield c


def register_payload(**overrides):
    payload = {
        "fullName": "A",
        "email": "a@x.com",
        "phone": "+910000000000",
    }
    payload.update(overrides)
    return payload
