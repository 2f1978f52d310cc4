"""
Shared fixtures: in-memory database, cipher, fake HTTP transport for the
identity providers, and a vault wired to fakes.
"""
import os

# Must be set before app modules are imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SKIP_DB_INIT", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

from crypto import TokenCipher
from database import build_engine, init_db
from services.credential_store import CredentialStore
from services.credential_vault import CredentialVault
from services.providers import GoogleAdapter, MicrosoftAdapter, PasswordAdapter, ProviderRegistry

TEST_SECRET = "unit-test-encryption-secret"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHttp:
    """Stands in for the requests module: records posts, replays queued responses or errors."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, response):
        self.responses.append(response)

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"unexpected POST to {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeMsalApp:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def acquire_token_by_authorization_code(self, code, scopes, redirect_uri=None):
        self.calls.append({"code": code, "scopes": scopes, "redirect_uri": redirect_uri})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return CredentialStore(db)


@pytest.fixture
def cipher():
    return TokenCipher(TEST_SECRET)


@pytest.fixture
def google_http():
    return FakeHttp()


@pytest.fixture
def password_http():
    return FakeHttp()


@pytest.fixture
def msal_app():
    return FakeMsalApp({"access_token": "ms-access", "refresh_token": "ms-refresh", "expires_in": 3599})


@pytest.fixture
def registry(google_http, password_http, msal_app):
    return ProviderRegistry(
        adapters={
            "google": GoogleAdapter("google-client", "google-secret", http=google_http),
            "microsoft": MicrosoftAdapter("ms-client", "ms-secret", app=msal_app),
            "password": PasswordAdapter("web-api-key", http=password_http),
        }
    )


@pytest.fixture
def bot_checks():
    return []


@pytest.fixture
def vault(cipher, store, registry, bot_checks):
    return CredentialVault(
        cipher,
        store,
        registry,
        bot_check=bot_checks.append,
        jwt_secret="jwt-test-secret",
    )
