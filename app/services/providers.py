"""
Provider exchange adapters: Google, Microsoft and email/password.

Each adapter turns an authorization artifact (OAuth code, or email+password)
into a Token Set and knows how its Token Set is stored (seal/unseal). Only
Google can refresh; the others return a RefreshUnavailable value from
refresh, which the vault reports as success=false.

Wire-level OAuth stays with the providers: Google's token endpoint and the
Identity Toolkit REST API are called with requests, Microsoft goes through msal.
Error mapping:
- provider rejected the code/password -> InvalidCredentials
- network error, timeout, 5xx, throttling -> ProviderUnavailable
- anything else -> BrokerError (logged, generic message)
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import msal
import requests

import codec
from codec import TokenSet
from config import (
    GOOGLE_TOKEN_URI,
    IDENTITY_TOOLKIT_URL,
    MICROSOFT_AUTHORITY,
    MICROSOFT_SCOPES,
    PROVIDER_REQUEST_TIMEOUT,
    get_secret,
)
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

logger = logging.getLogger(__name__)

# OAuth error codes that mean "this code / refresh token is no good"
OAUTH_REJECTED = {"invalid_grant", "invalid_request", "unauthorized_client"}

# Identity Toolkit error messages
PASSWORD_REJECTED = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "USER_DISABLED",
}
PASSWORD_THROTTLED = {"TOO_MANY_ATTEMPTS_TRY_LATER", "QUOTA_EXCEEDED"}
SIGN_UP_INVALID = {"INVALID_EMAIL", "WEAK_PASSWORD", "MISSING_PASSWORD", "MISSING_EMAIL"}


@dataclass
class Exchange:
    """Result of trading an authorization artifact for tokens."""
    token_set: TokenSet
    # Backend-assigned id (password provider only)
    user_id: str | None = None
    id_token: str | None = None


@dataclass
class PasswordCredentials:
    email: str
    password: str


@dataclass
class RefreshUnavailable:
    """Returned by refresh for providers whose refresh is not implemented."""
    provider: str
    message: str = "Refresh not implemented yet"


def _post(http: Any, url: str, **kwargs: Any) -> tuple[int, dict]:
    """POST with timeout; returns (status, json). Network and 5xx -> ProviderUnavailable."""
    kwargs.setdefault("timeout", PROVIDER_REQUEST_TIMEOUT)
    try:
        resp = http.post(url, **kwargs)
    except requests.exceptions.RequestException as exc:
        logger.error("Request to %s failed: %s", url.split("?")[0], exc)
        raise ProviderUnavailable() from exc
    if resp.status_code >= 500 or resp.status_code == 429:
        logger.error("Identity provider returned %s for %s", resp.status_code, url.split("?")[0])
        raise ProviderUnavailable()
    try:
        data = resp.json()
    except ValueError as exc:
        logger.error("Non-JSON response (%s) from %s", resp.status_code, url.split("?")[0])
        raise ProviderUnavailable() from exc
    if not isinstance(data, dict):
        raise ProviderUnavailable()
    return resp.status_code, data


class ProviderAdapter(ABC):
    """One implementation per provider tag; selected through the registry only."""

    name: str = ""
    # Column of CredentialRecord that holds this provider's encrypted payload
    storage_field: str = "tokens"
    accepts_authorization_code: bool = True

    @abstractmethod
    def exchange(self, artifact: Any, redirect_uri: str | None = None) -> Exchange:
        ...

    def refresh(self, token_set: TokenSet) -> TokenSet | RefreshUnavailable:
        return RefreshUnavailable(self.name)

    def seal(self, token_set: TokenSet) -> bytes:
        """Plaintext form of a Token Set before encryption."""
        return codec.encode(token_set)

    def unseal(self, data: bytes) -> TokenSet:
        return codec.decode(data)


class GoogleAdapter(ProviderAdapter):
    name = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        token_uri: str = GOOGLE_TOKEN_URI,
        http: Any = requests,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_uri = token_uri
        self._http = http

    def _token_request(self, data: dict[str, str], action: str) -> dict:
        status, body = _post(
            self._http,
            self._token_uri,
            data={"client_id": self._client_id, "client_secret": self._client_secret, **data},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if "error" in body or status >= 400:
            error = body.get("error")
            logger.error(
                "Google %s failed (%s): %s",
                action,
                status,
                body.get("error_description", error),
            )
            if error in OAUTH_REJECTED:
                raise InvalidCredentials()
            raise BrokerError(f"Google {action} failed")
        return body

    def exchange(self, artifact: Any, redirect_uri: str | None = None) -> Exchange:
        """Trade an authorization code for tokens (authorization_code grant)."""
        body = self._token_request(
            {
                "code": artifact,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri or "",
            },
            "token exchange",
        )
        return Exchange(token_set=dict(body))

    def refresh(self, token_set: TokenSet) -> TokenSet:
        """
        Trade the stored refresh token for a new Token Set. Google usually
        omits refresh_token from refresh responses; the stored one is kept.
        """
        refresh_token = codec.refresh_token_of(token_set)
        if not refresh_token:
            raise NoRefreshToken()
        body = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "token refresh",
        )
        refreshed = dict(body)
        if not refreshed.get("refresh_token"):
            refreshed["refresh_token"] = refresh_token
        return refreshed


class MicrosoftAdapter(ProviderAdapter):
    """
    Authorization-code exchange through msal. Refresh is not implemented:
    refresh returns RefreshUnavailable.
    """
    name = "microsoft"

    # msal adds these itself and rejects them if passed explicitly
    RESERVED_SCOPES = {"openid", "profile", "offline_access"}

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        authority: str = MICROSOFT_AUTHORITY,
        scopes: list[str] | None = None,
        app: Any = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._authority = authority
        self._scopes = [
            s for s in (scopes if scopes is not None else MICROSOFT_SCOPES)
            if s.lower() not in self.RESERVED_SCOPES
        ]
        self._app = app

    def _client(self) -> Any:
        # Built on first use: msal resolves the authority over the network
        if self._app is None:
            self._app = msal.ConfidentialClientApplication(
                self._client_id,
                authority=self._authority,
                client_credential=self._client_secret,
            )
        return self._app

    def exchange(self, artifact: Any, redirect_uri: str | None = None) -> Exchange:
        try:
            result = self._client().acquire_token_by_authorization_code(
                artifact,
                scopes=self._scopes,
                redirect_uri=redirect_uri,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Microsoft token exchange request failed: %s", exc)
            raise ProviderUnavailable() from exc
        if "error" in result:
            logger.error(
                "Microsoft token exchange failed: %s",
                result.get("error_description", result.get("error")),
            )
            if result.get("error") in OAUTH_REJECTED:
                raise InvalidCredentials()
            raise BrokerError("Microsoft token exchange failed")
        return Exchange(token_set=dict(result))


class PasswordAdapter(ProviderAdapter):
    """
    Email/password through the Identity Toolkit REST API. The stored payload
    is the raw refresh token, in the refresh_token column.
    """
    name = "password"
    storage_field = "refresh_token"
    accepts_authorization_code = False

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = IDENTITY_TOOLKIT_URL,
        http: Any = requests,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._http = http

    def _call(self, method: str, payload: dict[str, Any]) -> tuple[int, dict, str | None]:
        if not self._api_key:
            raise FailedPrecondition("Missing secret: WEB_API_KEY")
        status, body = _post(
            self._http,
            f"{self._base_url}/accounts:{method}",
            params={"key": self._api_key},
            json=payload,
        )
        error = body.get("error")
        code = None
        if error or status >= 400:
            message = (error or {}).get("message", "") if isinstance(error, dict) else str(error)
            # Messages look like "TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled..."
            code = message.split(" ")[0] if message else "UNKNOWN"
        return status, body, code

    def exchange(self, artifact: PasswordCredentials, redirect_uri: str | None = None) -> Exchange:
        _, body, code = self._call(
            "signInWithPassword",
            {"email": artifact.email, "password": artifact.password, "returnSecureToken": True},
        )
        if code:
            if code in PASSWORD_REJECTED:
                raise InvalidCredentials()
            if code in PASSWORD_THROTTLED:
                raise ProviderUnavailable()
            logger.error("Password sign-in failed: %s", code)
            raise BrokerError("Sign in failed")
        local_id = body.get("localId")
        refresh_token = body.get("refreshToken")
        if not local_id or not refresh_token:
            logger.error("Password sign-in response missing localId or refreshToken")
            raise BrokerError("Sign in failed")
        return Exchange(
            token_set={"refreshToken": refresh_token},
            user_id=local_id,
            id_token=body.get("idToken"),
        )

    def sign_up(self, credentials: PasswordCredentials) -> str:
        """Create the identity; returns the backend-assigned user id."""
        _, body, code = self._call(
            "signUp",
            {"email": credentials.email, "password": credentials.password, "returnSecureToken": True},
        )
        if code:
            if code == "EMAIL_EXISTS":
                raise AlreadyExists()
            if code in SIGN_UP_INVALID:
                raise InvalidArgument("Invalid email or password.")
            if code in PASSWORD_THROTTLED:
                raise ProviderUnavailable()
            logger.error("Password sign-up failed: %s", code)
            raise BrokerError("Failed to create user")
        local_id = body.get("localId")
        if not local_id:
            raise BrokerError("Failed to create user")
        return local_id

    def seal(self, token_set: TokenSet) -> bytes:
        return token_set["refreshToken"].encode("utf-8")

    def unseal(self, data: bytes) -> TokenSet:
        return {"refreshToken": data.decode("utf-8")}


@dataclass
class ProviderRegistry:
    adapters: Mapping[str, ProviderAdapter] = field(default_factory=dict)

    def get(self, name: str | None) -> ProviderAdapter:
        adapter = self.adapters.get(name or "")
        if adapter is None:
            raise UnsupportedProvider()
        return adapter

    def __contains__(self, name: object) -> bool:
        return name in self.adapters


def default_registry() -> ProviderRegistry:
    """Adapters configured from the environment. Missing secrets fail at call time."""
    return ProviderRegistry(
        adapters={
            "google": GoogleAdapter(
                get_secret("GOOGLE_CLIENT_ID", required=False),
                get_secret("GOOGLE_CLIENT_SECRET", required=False),
            ),
            "microsoft": MicrosoftAdapter(
                get_secret("MICROSOFT_CLIENT_ID", required=False),
                get_secret("MICROSOFT_CLIENT_SECRET", required=False),
            ),
            "password": PasswordAdapter(get_secret("WEB_API_KEY", required=False)),
        }
    )
