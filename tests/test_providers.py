"""
Provider adapters against fake HTTP transports and a fake msal client.
"""
import pytest
import requests

from conftest import FakeHttp, FakeMsalApp, FakeResponse
from errors import (
    AlreadyExists,
    BrokerError,
    FailedPrecondition,
    InvalidArgument,
    InvalidCredentials,
    NoRefreshToken,
    ProviderUnavailable,
    UnsupportedProvider,
)
from services.providers import (
    GoogleAdapter,
    MicrosoftAdapter,
    PasswordAdapter,
    PasswordCredentials,
    ProviderRegistry,
    RefreshUnavailable,
)


class TestGoogleAdapter:

    def test_exchange_posts_authorization_code_grant(self):
        http = FakeHttp(FakeResponse(200, {"access_token": "a", "refresh_token": "r", "expires_in": 3599}))
        adapter = GoogleAdapter("cid", "csecret", token_uri="https://token.test", http=http)

        exchange = adapter.exchange("auth-code", "https://app.test/callback")

        assert exchange.token_set == {"access_token": "a", "refresh_token": "r", "expires_in": 3599}
        assert exchange.user_id is None
        call = http.calls[0]
        assert call["url"] == "https://token.test"
        assert call["data"] == {
            "client_id": "cid",
            "client_secret": "csecret",
            "code": "auth-code",
            "grant_type": "authorization_code",
            "redirect_uri": "https://app.test/callback",
        }
        assert "timeout" in call

    def test_rejected_code_is_invalid_credentials(self):
        http = FakeHttp(FakeResponse(400, {"error": "invalid_grant", "error_description": "Bad Request"}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        with pytest.raises(InvalidCredentials):
            adapter.exchange("used-code", "https://app.test/callback")

    def test_misconfigured_client_is_generic_error(self):
        http = FakeHttp(FakeResponse(401, {"error": "invalid_client"}))
        adapter = GoogleAdapter("cid", "wrong", http=http)

        with pytest.raises(BrokerError) as excinfo:
            adapter.exchange("code", "https://app.test/callback")
        assert type(excinfo.value) is BrokerError

    def test_server_error_is_provider_unavailable(self):
        adapter = GoogleAdapter("cid", "csecret", http=FakeHttp(FakeResponse(503, {})))

        with pytest.raises(ProviderUnavailable) as excinfo:
            adapter.exchange("code", "https://app.test/callback")
        assert excinfo.value.retryable

    def test_network_error_is_provider_unavailable(self):
        http = FakeHttp(requests.exceptions.ConnectionError("boom"))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        with pytest.raises(ProviderUnavailable):
            adapter.exchange("code", "https://app.test/callback")

    def test_non_json_response_is_provider_unavailable(self):
        http = FakeHttp(FakeResponse(200, ValueError("no json")))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        with pytest.raises(ProviderUnavailable):
            adapter.exchange("code", "https://app.test/callback")

    def test_refresh_posts_refresh_token_grant(self):
        http = FakeHttp(FakeResponse(200, {"access_token": "new", "expires_in": 3600}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        adapter.refresh({"access_token": "old", "refresh_token": "R1"})

        assert http.calls[0]["data"]["grant_type"] == "refresh_token"
        assert http.calls[0]["data"]["refresh_token"] == "R1"

    def test_refresh_keeps_stored_refresh_token_when_response_omits_it(self):
        http = FakeHttp(FakeResponse(200, {"access_token": "new", "expires_in": 3600}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        refreshed = adapter.refresh({"access_token": "old", "refresh_token": "R1"})

        assert refreshed == {"access_token": "new", "expires_in": 3600, "refresh_token": "R1"}

    def test_refresh_uses_rotated_refresh_token(self):
        http = FakeHttp(FakeResponse(200, {"access_token": "new", "refresh_token": "R2"}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        assert adapter.refresh({"refresh_token": "R1"})["refresh_token"] == "R2"

    def test_refresh_accepts_camel_case_refresh_token(self):
        http = FakeHttp(FakeResponse(200, {"access_token": "new"}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        refreshed = adapter.refresh({"refreshToken": "R1"})

        assert http.calls[0]["data"]["refresh_token"] == "R1"
        assert refreshed["refresh_token"] == "R1"

    def test_refresh_without_refresh_token(self):
        http = FakeHttp()
        adapter = GoogleAdapter("cid", "csecret", http=http)

        with pytest.raises(NoRefreshToken):
            adapter.refresh({"access_token": "old"})
        assert http.calls == []

    def test_revoked_refresh_token_is_invalid_credentials(self):
        http = FakeHttp(FakeResponse(400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}))
        adapter = GoogleAdapter("cid", "csecret", http=http)

        with pytest.raises(InvalidCredentials):
            adapter.refresh({"refresh_token": "R1"})


class TestMicrosoftAdapter:

    def test_exchange_returns_msal_response_and_filters_reserved_scopes(self):
        app = FakeMsalApp({"access_token": "ms", "refresh_token": "mr", "id_token_claims": {"oid": "1"}})
        adapter = MicrosoftAdapter("cid", "secret", scopes=["user.read", "mail.read", "offline_access"], app=app)

        exchange = adapter.exchange("ms-code", "https://app.test/callback")

        assert exchange.token_set["access_token"] == "ms"
        assert exchange.token_set["id_token_claims"] == {"oid": "1"}
        assert app.calls == [
            {"code": "ms-code", "scopes": ["user.read", "mail.read"], "redirect_uri": "https://app.test/callback"}
        ]

    def test_rejected_code_is_invalid_credentials(self):
        app = FakeMsalApp({"error": "invalid_grant", "error_description": "AADSTS70008"})
        adapter = MicrosoftAdapter("cid", "secret", app=app)

        with pytest.raises(InvalidCredentials):
            adapter.exchange("expired", "https://app.test/callback")

    def test_network_error_is_provider_unavailable(self):
        app = FakeMsalApp(requests.exceptions.ConnectionError("down"))
        adapter = MicrosoftAdapter("cid", "secret", app=app)

        with pytest.raises(ProviderUnavailable):
            adapter.exchange("code", "https://app.test/callback")

    def test_refresh_returns_not_implemented_result(self):
        app = FakeMsalApp({})
        adapter = MicrosoftAdapter("cid", "secret", app=app)

        result = adapter.refresh({"access_token": "a", "refresh_token": "R1"})

        assert result == RefreshUnavailable(provider="microsoft", message="Refresh not implemented yet")
        assert app.calls == []


class TestPasswordAdapter:

    def test_sign_in_returns_local_id_and_refresh_token(self):
        http = FakeHttp(FakeResponse(200, {"localId": "abc", "idToken": "T", "refreshToken": "R"}))
        adapter = PasswordAdapter("api-key", base_url="https://idt.test/v1", http=http)

        exchange = adapter.exchange(PasswordCredentials("u@x.com", "p"))

        assert exchange.user_id == "abc"
        assert exchange.id_token == "T"
        assert exchange.token_set == {"refreshToken": "R"}
        call = http.calls[0]
        assert call["url"] == "https://idt.test/v1/accounts:signInWithPassword"
        assert call["params"] == {"key": "api-key"}
        assert call["json"] == {"email": "u@x.com", "password": "p", "returnSecureToken": True}

    @pytest.mark.parametrize("message", ["EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS"])
    def test_bad_credentials_are_generic(self, message):
        http = FakeHttp(FakeResponse(400, {"error": {"code": 400, "message": message}}))
        adapter = PasswordAdapter("api-key", http=http)

        with pytest.raises(InvalidCredentials) as excinfo:
            adapter.exchange(PasswordCredentials("u@x.com", "wrong"))
        assert excinfo.value.message == "Invalid credentials"

    def test_throttling_message_with_detail_is_provider_unavailable(self):
        message = "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled"
        http = FakeHttp(FakeResponse(400, {"error": {"code": 400, "message": message}}))
        adapter = PasswordAdapter("api-key", http=http)

        with pytest.raises(ProviderUnavailable):
            adapter.exchange(PasswordCredentials("u@x.com", "p"))

    def test_unexpected_error_is_generic_sign_in_failure(self):
        http = FakeHttp(FakeResponse(400, {"error": {"code": 400, "message": "OPERATION_NOT_ALLOWED"}}))
        adapter = PasswordAdapter("api-key", http=http)

        with pytest.raises(BrokerError) as excinfo:
            adapter.exchange(PasswordCredentials("u@x.com", "p"))
        assert excinfo.value.message == "Sign in failed"

    def test_missing_api_key_fails_before_request(self):
        http = FakeHttp()
        adapter = PasswordAdapter("", http=http)

        with pytest.raises(FailedPrecondition):
            adapter.exchange(PasswordCredentials("u@x.com", "p"))
        assert http.calls == []

    def test_sign_up_returns_local_id(self):
        http = FakeHttp(FakeResponse(200, {"localId": "new-uid", "idToken": "T", "refreshToken": "R"}))
        adapter = PasswordAdapter("api-key", base_url="https://idt.test/v1", http=http)

        assert adapter.sign_up(PasswordCredentials("u@x.com", "secret1")) == "new-uid"
        assert http.calls[0]["url"] == "https://idt.test/v1/accounts:signUp"

    def test_sign_up_existing_email(self):
        http = FakeHttp(FakeResponse(400, {"error": {"code": 400, "message": "EMAIL_EXISTS"}}))
        adapter = PasswordAdapter("api-key", http=http)

        with pytest.raises(AlreadyExists):
            adapter.sign_up(PasswordCredentials("u@x.com", "secret1"))

    def test_sign_up_weak_password(self):
        message = "WEAK_PASSWORD : Password should be at least 6 characters"
        http = FakeHttp(FakeResponse(400, {"error": {"code": 400, "message": message}}))
        adapter = PasswordAdapter("api-key", http=http)

        with pytest.raises(InvalidArgument):
            adapter.sign_up(PasswordCredentials("u@x.com", "p"))

    def test_seal_stores_raw_refresh_token(self):
        adapter = PasswordAdapter("api-key")

        assert adapter.seal({"refreshToken": "R"}) == b"R"
        assert adapter.unseal(b"R") == {"refreshToken": "R"}

    def test_refresh_returns_not_implemented_result(self):
        http = FakeHttp()
        adapter = PasswordAdapter("api-key", http=http)

        result = adapter.refresh({"refreshToken": "R"})

        assert isinstance(result, RefreshUnavailable)
        assert result.provider == "password"
        assert http.calls == []


class TestProviderRegistry:

    def test_unknown_provider(self):
        registry = ProviderRegistry(adapters={"google": GoogleAdapter("cid", "secret")})

        with pytest.raises(UnsupportedProvider):
            registry.get("github")
        with pytest.raises(UnsupportedProvider):
            registry.get(None)

    def test_known_provider(self):
        adapter = GoogleAdapter("cid", "secret")
        registry = ProviderRegistry(adapters={"google": adapter})

        assert registry.get("google") is adapter
        assert "google" in registry
