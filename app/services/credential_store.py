"""
Credential store: one encrypted record per user id.

upsert is a merge-write: only the named columns are replaced, everything
else on the row is left as it was. Each write commits once and stamps
updated_at (and refreshed_at for refresh writes) with the current UTC time.

There is no lock or compare-and-swap across read-decrypt-modify-write. Two
concurrent refreshes for the same user both commit and the later one wins.
"""
import logging
from datetime import datetime, UTC

from sqlalchemy.orm import Session

from errors import NotFound
from models import CredentialRecord

logger = logging.getLogger(__name__)

# Columns a caller may write through upsert
WRITABLE_FIELDS = frozenset({"tokens", "refresh_token"})


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _advance(current: datetime | None, now: datetime) -> datetime:
    current = _aware(current)
    if current is not None and current > now:
        return current
    return now


class CredentialStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def find(self, user_id: str) -> CredentialRecord | None:
        return self._db.get(CredentialRecord, user_id)

    def get(self, user_id: str) -> CredentialRecord:
        record = self.find(user_id)
        if record is None:
            raise NotFound()
        return record

    def upsert(
        self,
        user_id: str,
        provider: str,
        fields: dict[str, str],
        *,
        refreshed: bool = False,
    ) -> CredentialRecord:
        """Merge provider and fields into the record for user_id, creating it if needed."""
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {', '.join(sorted(unknown))}")

        now = datetime.now(UTC)
        record = self.find(user_id)
        if record is None:
            record = CredentialRecord(user_id=user_id, created_at=now)
            self._db.add(record)

        record.provider = provider
        for name, value in fields.items():
            setattr(record, name, value)
        record.updated_at = _advance(record.updated_at, now)
        if refreshed:
            record.refreshed_at = _advance(record.refreshed_at, now)

        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        logger.debug("Stored %s credential for user %s", provider, user_id)
        return record
