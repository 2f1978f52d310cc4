"""
Auth router: email/password sign-up and sign-in, OAuth login, token refresh.

Delegates business logic to services.credential_vault. Request fields are
optional at the schema level so the vault can reject missing ones with its
own InvalidArgument error (400) instead of a framework validation error.
BrokerError subclasses are turned into JSON responses by the handler in main.

- POST /auth/email/sign-up   -> {uid, customToken}
- POST /auth/email/sign-in   -> {uid, idToken}
- POST /auth/oauth/login     -> {success}
- POST /auth/oauth/refresh   -> {success, provider, expiresIn?, message?}
- GET  /auth/oauth/config    -> {googleClientId, microsoftClientId}
"""
from functools import lru_cache

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from config import get_secret
from crypto import TokenCipher
from database import get_db
from errors import FailedPrecondition
from services.credential_store import CredentialStore
from services.credential_vault import CredentialVault
from services.providers import ProviderRegistry, default_registry

router = APIRouter(prefix="/auth")


# --- Request models ---


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EmailAuthBody(_Body):
    """Email/password request; recaptchaToken is required only when reCAPTCHA is configured."""
    email: str | None = None
    password: str | None = None
    recaptcha_token: str | None = Field(default=None, alias="recaptchaToken")


class OAuthLoginBody(_Body):
    provider: str | None = None
    code: str | None = None
    redirect_uri: str | None = Field(default=None, alias="redirectUri")
    user_id: str | None = Field(default=None, alias="userId")
    recaptcha_token: str | None = Field(default=None, alias="recaptchaToken")


class RefreshBody(_Body):
    user_id: str | None = Field(default=None, alias="userId")
    provider: str | None = None


# --- Dependencies ---


@lru_cache(maxsize=1)
def get_cipher() -> TokenCipher:
    """Cipher for ENCRYPTION_KEY, built once per process; raises until the secret is set."""
    return TokenCipher(get_secret("ENCRYPTION_KEY"))


@lru_cache(maxsize=1)
def get_providers() -> ProviderRegistry:
    return default_registry()


def get_vault(
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
) -> CredentialVault:
    # get_cipher is passed uncalled: only operations that touch stored tokens need ENCRYPTION_KEY
    return CredentialVault(get_cipher, CredentialStore(db), providers)


# --- Endpoints ---


@router.post("/email/sign-up")
def email_sign_up(body: EmailAuthBody, vault: CredentialVault = Depends(get_vault)):
    """Create a Firebase/Identity Platform user and return a session credential."""
    result = vault.sign_up(body.email, body.password, body.recaptcha_token)
    return {"uid": result.uid, "customToken": result.custom_token}


@router.post("/email/sign-in")
def email_sign_in(body: EmailAuthBody, vault: CredentialVault = Depends(get_vault)):
    """Verify the password; the encrypted refresh token is stored under the returned uid."""
    result = vault.sign_in_with_password(body.email, body.password, body.recaptcha_token)
    return {"uid": result.uid, "idToken": result.id_token}


@router.post("/oauth/login")
def oauth_login(body: OAuthLoginBody, vault: CredentialVault = Depends(get_vault)):
    result = vault.login_with_oauth(
        body.provider,
        body.code,
        body.redirect_uri,
        body.user_id,
        body.recaptcha_token,
    )
    return {"success": result.success}


@router.post("/oauth/refresh")
def oauth_refresh(body: RefreshBody, vault: CredentialVault = Depends(get_vault)):
    """
    Refresh the stored provider tokens for userId. Microsoft returns
    success=false with a message; that is not an error.
    """
    result = vault.refresh_oauth_token(body.user_id, body.provider)
    payload = {"success": result.success, "provider": result.provider}
    if result.expires_in is not None:
        payload["expiresIn"] = result.expires_in
    if result.message:
        payload["message"] = result.message
    return payload


@router.get("/oauth/config")
def oauth_public_config():
    """Public (non-secret) OAuth client ids so the client can configure its SDKs."""
    google_id = get_secret("GOOGLE_CLIENT_ID", required=False)
    microsoft_id = get_secret("MICROSOFT_CLIENT_ID", required=False)
    if not google_id or not microsoft_id:
        raise FailedPrecondition("OAuth client IDs not configured")
    return {"googleClientId": google_id, "microsoftClientId": microsoft_id}
