import pytest

from sfsoap.client import Client
from sfsoap.config import ClientConfig

_SF_ENV = (
    "SF_API_VERSION",
    "SF_LOGIN_HOST",
    "SF_CLIENT_ID",
    "SF_CLIENT_SECRET",
    "SF_BATCH_SIZE",
    "SF_DEBUG_CATEGORIES",
    "SF_ACCESS_TOKEN",
    "SF_SERVER_URL",
    "SF_TIMEOUT",
    "SF_GZIP",
    "SF_DEBUG",
    "SF_USERNAME",
    "SF_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_sf_env(monkeypatch):
    """Keep a developer's real SF_* variables (or .env) out of the tests."""
    for var in _SF_ENV:
        monkeypatch.delenv(var, raising=False)


LOGIN_RESULT = {
    "sessionId": "00DSESSION0000000000abc",
    "serverUrl": "https://na1.salesforce.com/services/Soap/u/44.0/00D000000000001",
    "userInfo": {"userName": "user@example.com", "organizationId": "00D000000000001"},
}


@pytest.fixture
def client():
    """Unauthenticated client with default configuration."""
    c = Client(ClientConfig())
    yield c
    c.close()


@pytest.fixture
def logged_in_client(client, monkeypatch):
    """Client after a successful password login (transport.login stubbed)."""
    monkeypatch.setattr(client.transport, "login", lambda u, p: dict(LOGIN_RESULT))
    client.login("user@example.com", "secret")
    return client
