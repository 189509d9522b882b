"""
Utility functions for the sync API.
"""

import hmac
import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.

    Accepts a trailing 'Z' and explicit offsets. Values without an offset
    are taken to be UTC already.

    Raises:
        ValueError: if the string is not a valid ISO-8601 timestamp
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a stored (naive UTC) datetime as ISO-8601 with millisecond precision and 'Z'."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_leading_int(value: str) -> Optional[int]:
    """
    Read the integer at the start of a string, ignoring anything after it
    ("5abc" -> 5, "2.5" -> 2). Returns None when the string does not start
    with digits.
    """
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_now_iso() -> str:
    return format_timestamp(utc_now())


def verify_bearer_token(authorization: Optional[str], expected_token: str) -> bool:
    """
    Verify an 'Authorization: Bearer <token>' header value.

    Args:
        authorization: Raw Authorization header (may be None)
        expected_token: MOBILE_API_KEY

    Returns:
        True if the header carries the expected token, False otherwise
    """
    if not authorization or not expected_token:
        logger.info("Bearer token verification: missing credentials")
        return False

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        logger.info("Bearer token verification: malformed Authorization header")
        return False

    # Constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(token.strip().encode("utf-8"), expected_token.encode("utf-8"))
    logger.debug(f"Bearer token verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
