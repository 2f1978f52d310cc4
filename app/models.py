"""
Data models for the credential broker.
"""
from sqlalchemy import Column, String, Text, DateTime

from database import Base


class CredentialRecord(Base):
    """
    One row per user identity holding that user's encrypted provider tokens.

    - user_id: primary key. Backend-assigned localId for the password
      provider, client-supplied id for OAuth providers.
    - provider: password | google | microsoft; selects the adapter on refresh.
    - tokens: encrypted JSON Token Set for OAuth providers ("<hex iv>:<hex ct>").
    - refresh_token: encrypted Identity Platform refresh token (password only).
    - updated_at / refreshed_at: set by the store on write; never decrease.
    """
    __tablename__ = "user_tokens"

    user_id = Column(String(255), primary_key=True, index=True)
    provider = Column(String(32), nullable=False)

    # Encrypted at rest (crypto.encrypt / crypto.decrypt)
    tokens = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    refreshed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"CredentialRecord(user_id={self.user_id!r}, provider={self.provider!r})"
