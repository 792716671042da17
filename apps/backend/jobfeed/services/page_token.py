"""Continuation tokens for keyset pagination over (updated_at, id)."""

from dataclasses import dataclass
from datetime import datetime

from jobfeed.utils.timestamps import ensure_utc, parse_timestamp

_SEPARATOR = "!"


class InvalidPageTokenError(ValueError):
    """Raised when a continuation token cannot be decoded."""


@dataclass(frozen=True)
class PageCursor:
    """Sort key of the last row a page returned."""

    job_id: int
    updated_at: datetime


def encode_page_token(job_id: int, updated_at: datetime) -> str:
    """Encode the last-seen sort key as ``<id>!<ISO-8601 UTC timestamp>``."""
    return f"{job_id}{_SEPARATOR}{ensure_utc(updated_at).isoformat()}"


def decode_page_token(token: str) -> PageCursor:
    """Decode a token produced by encode_page_token.

    Raises:
        InvalidPageTokenError: If the token is malformed
    """
    raw_id, sep, raw_timestamp = token.partition(_SEPARATOR)
    if not sep:
        raise InvalidPageTokenError(f"Malformed page token: '{token}'")

    try:
        job_id = int(raw_id)
        updated_at = parse_timestamp(raw_timestamp)
    except ValueError as e:
        raise InvalidPageTokenError(f"Malformed page token: '{token}'") from e

    return PageCursor(job_id=job_id, updated_at=updated_at)
