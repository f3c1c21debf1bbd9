import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

from tasky.models.documents import VerificationTokenDocument, utc_now
from tasky.models.enums import TokenPurpose


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _is_expired(expires_at: datetime, now: datetime) -> bool:
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


class TokenRepository:
    """One-time tokens for e-mail verification and password reset.

    Tokens are stored as SHA-256 digests. A new token replaces any earlier one
    for the same email and purpose, and a token is deleted once redeemed.
    """

    async def issue(
        self,
        email: str,
        purpose: TokenPurpose,
        token: str,
        ttl_seconds: int,
    ) -> VerificationTokenDocument:
        await VerificationTokenDocument.find(
            VerificationTokenDocument.email == email,
            VerificationTokenDocument.purpose == purpose,
        ).delete()
        doc = VerificationTokenDocument(
            email=email,
            purpose=purpose,
            token_hash=hash_token(token),
            expires_at=utc_now() + timedelta(seconds=ttl_seconds),
        )
        await doc.insert()
        return doc

    async def consume(
        self,
        purpose: TokenPurpose,
        token: str,
        email: Optional[str] = None,
    ) -> Optional[VerificationTokenDocument]:
        """Redeem a token. Returns the stored record, or None if unknown or expired."""
        criteria = [
            VerificationTokenDocument.purpose == purpose,
            VerificationTokenDocument.token_hash == hash_token(token),
        ]
        if email is not None:
            criteria.append(VerificationTokenDocument.email == email)
        doc = await VerificationTokenDocument.find_one(*criteria)
        if doc is None:
            return None
        # The TTL monitor runs about once a minute, so expiry is checked here too
        await doc.delete()
        if _is_expired(doc.expires_at, utc_now()):
            return None
        return doc
