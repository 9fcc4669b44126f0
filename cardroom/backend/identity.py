"""Identity helpers: mailboxes, avatars, registrations and session tokens."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from urllib.parse import urlencode


TOKEN_BYTES = 24
GRAVATAR_BASE = "https://www.gravatar.com/avatar/"


def normalize_mbox(mbox: str) -> str:
    """Return a lower-cased ``mailto:`` IRI for an address or mailbox."""
    value = mbox.strip().lower()
    if not value.startswith("mailto:"):
        value = f"mailto:{value}"
    return value


def avatar_url(mbox: str, size: int = 64) -> str:
    """Gravatar identicon for the mailbox owner."""
    email = normalize_mbox(mbox).removeprefix("mailto:")
    digest = hashlib.md5(email.encode("utf-8")).hexdigest()
    query = urlencode({"s": size, "r": "pg", "d": "identicon"})
    return f"{GRAVATAR_BASE}{digest}?{query}"


def new_registration() -> str:
    return str(uuid.uuid4())


def generate_token() -> str:
    """Generate a URL-safe token for session access."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str, server_salt: str) -> str:
    """Create deterministic token hash via sha256(token + server_salt)."""
    payload = f"{token}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_token(raw_token: str, expected_hash: str, server_salt: str) -> bool:
    return secrets.compare_digest(hash_token(raw_token, server_salt), expected_hash)
