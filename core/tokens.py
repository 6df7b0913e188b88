import hmac
import re
import secrets
from datetime import datetime, timezone

# token_urlsafe(32) always yields 43 characters from the url-safe base64 alphabet
TOKEN_BYTES = 32
TOKEN_LENGTH = 43
_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]{%d}" % TOKEN_LENGTH)


def generate_session_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def is_well_formed(token) -> bool:
    """Cheap shape check run before any storage lookup."""
    if not isinstance(token, str) or len(token) != TOKEN_LENGTH:
        return False
    return _TOKEN_RE.fullmatch(token) is not None


def tokens_equal(a: str, b: str) -> bool:
    # Some backends compare strings case-insensitively; confirm the exact value in constant time
    return hmac.compare_digest(a.encode("ascii"), b.encode("ascii"))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Drivers without timezone support hand back naive datetimes; those are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
