"""
Credential vault: login persistence and refresh orchestration.

Business logic separated from the HTTP layer. The vault validates requests
before any external call, runs the bot check, dispatches to the provider
adapter, and writes the encrypted result through the credential store. The
store write is always the last step, so a failure anywhere earlier leaves the
stored record untouched.

Refresh runs LOADING -> DECRYPTING -> EXCHANGING -> MERGING -> PERSISTING ->
DONE. A failure at any step is logged with the step it happened in.
Dispatch uses the provider stored on the record; a request naming a
different provider is rejected.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

import codec
from codec import TokenSet
from config import get_secret
from crypto import TokenCipher
from errors import (
    BrokerError,
    CorruptStore,
    FailedPrecondition,
    InvalidArgument,
    UnsupportedProvider,
)
from recaptcha import validate_recaptcha
from security import create_jwt
from services.credential_store import CredentialStore
from services.providers import PasswordCredentials, ProviderAdapter, ProviderRegistry, RefreshUnavailable

logger = logging.getLogger(__name__)

class RefreshState(str, Enum):
    LOADING = "loading"
    DECRYPTING = "decrypting"
    EXCHANGING = "exchanging"
    MERGING = "merging"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class SignUpResult:
    uid: str
    custom_token: str


@dataclass
class SignInResult:
    uid: str
    id_token: str | None


@dataclass
class LoginResult:
    success: bool = True


@dataclass
class RefreshResult:
    success: bool
    provider: str
    expires_in: int | None = None
    message: str | None = None


class CredentialVault:
    def __init__(
        self,
        cipher: TokenCipher | Callable[[], TokenCipher],
        store: CredentialStore,
        providers: ProviderRegistry,
        *,
        bot_check: Callable[[str | None], None] = validate_recaptcha,
        jwt_secret: str | None = None,
    ) -> None:
        self._cipher_source = cipher
        self._store = store
        self._providers = providers
        self._bot_check = bot_check
        self._jwt_secret = jwt_secret

    @property
    def _cipher(self) -> TokenCipher:
        # A factory is resolved on first use, so sign-up works without ENCRYPTION_KEY
        if isinstance(self._cipher_source, TokenCipher):
            return self._cipher_source
        return self._cipher_source()

    # --- login paths ---

    def sign_up(self, email: str | None, password: str | None, recaptcha_token: str | None = None) -> SignUpResult:
        """Create an email/password identity and return a session credential. Nothing is stored."""
        if not email or not password:
            raise InvalidArgument("Email and password required.")
        self._bot_check(recaptcha_token)
        adapter = self._providers.get("password")
        uid = adapter.sign_up(PasswordCredentials(email, password))
        secret = self._jwt_secret or get_secret("JWT_SECRET")
        logger.info("Created password identity %s", uid)
        return SignUpResult(uid=uid, custom_token=create_jwt(uid, secret))

    def sign_in_with_password(
        self, email: str | None, password: str | None, recaptcha_token: str | None = None
    ) -> SignInResult:
        """Verify the password and store the encrypted refresh token under the backend-assigned id."""
        if not email or not password:
            raise InvalidArgument("Email and password required.")
        self._bot_check(recaptcha_token)
        adapter = self._providers.get("password")
        exchange = adapter.exchange(PasswordCredentials(email, password))
        self._persist(exchange.user_id, adapter, exchange.token_set)
        return SignInResult(uid=exchange.user_id, id_token=exchange.id_token)

    def login_with_oauth(
        self,
        provider: str | None,
        code: str | None,
        redirect_uri: str | None,
        user_id: str | None,
        recaptcha_token: str | None = None,
    ) -> LoginResult:
        """Exchange an authorization code and store the Token Set under the client-supplied id."""
        if not provider or not code or not redirect_uri or not user_id:
            raise InvalidArgument("Missing required fields.")
        adapter = self._providers.get(provider)
        if not adapter.accepts_authorization_code:
            raise UnsupportedProvider("Unknown provider")
        self._bot_check(recaptcha_token)
        exchange = adapter.exchange(code, redirect_uri)
        self._persist(user_id, adapter, exchange.token_set)
        return LoginResult(success=True)

    def _persist(self, user_id: str, adapter: ProviderAdapter, token_set: TokenSet, *, refreshed: bool = False) -> None:
        try:
            ciphertext = self._cipher.encrypt(adapter.seal(token_set))
            self._store.upsert(user_id, adapter.name, {adapter.storage_field: ciphertext}, refreshed=refreshed)
        except SQLAlchemyError as exc:
            logger.error("Failed to store %s tokens for user %s", adapter.name, user_id, exc_info=True)
            raise BrokerError("Failed to store tokens") from exc

    # --- refresh ---

    def refresh_oauth_token(self, user_id: str | None, provider: str | None) -> RefreshResult:
        if not user_id or not provider:
            raise InvalidArgument("userId and provider required")
        requested = self._providers.get(provider)

        state = RefreshState.LOADING
        try:
            logger.debug("Refresh %s: %s", user_id, state.value)
            record = self._load_record(user_id)
            adapter = self._providers.get(record.provider)
            if adapter is not requested:
                raise InvalidArgument("Provider does not match stored credential")

            state = RefreshState.DECRYPTING
            logger.debug("Refresh %s: %s", user_id, state.value)
            token_set = self._load_token_set(user_id, adapter, getattr(record, adapter.storage_field))

            state = RefreshState.EXCHANGING
            logger.debug("Refresh %s: %s (%s)", user_id, state.value, adapter.name)
            response = adapter.refresh(token_set)
            if isinstance(response, RefreshUnavailable):
                logger.info("Refresh requested for %s credential of user %s; not implemented", adapter.name, user_id)
                return RefreshResult(success=False, provider=response.provider, message=response.message)

            state = RefreshState.MERGING
            logger.debug("Refresh %s: %s", user_id, state.value)
            merged = codec.merge(token_set, response)

            state = RefreshState.PERSISTING
            logger.debug("Refresh %s: %s", user_id, state.value)
            self._persist(user_id, adapter, merged, refreshed=True)

            state = RefreshState.DONE
            logger.info("Refreshed %s tokens for user %s", adapter.name, user_id)
            return RefreshResult(success=True, provider=adapter.name, expires_in=codec.expires_in_of(response))
        except BrokerError as exc:
            logger.warning(
                "Refresh for user %s failed while %s: %s (%s)",
                user_id,
                state.value,
                type(exc).__name__,
                exc.code,
            )
            raise

    def _load_record(self, user_id: str):
        try:
            return self._store.get(user_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to load tokens for user %s", user_id, exc_info=True)
            raise BrokerError("Failed to load tokens") from exc

    def _load_token_set(self, user_id: str, adapter: ProviderAdapter, ciphertext: str | None) -> TokenSet:
        if not ciphertext:
            raise FailedPrecondition("Stored tokens missing")
        try:
            return adapter.unseal(self._cipher.decrypt(ciphertext))
        except ValueError as exc:
            # Wrong key and damaged data look the same to the caller
            logger.error("Failed to decrypt tokens for user %s", user_id, exc_info=True)
            raise CorruptStore() from exc
