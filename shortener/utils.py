import hashlib
import hmac
import re
import secrets
import string
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

ALPHABET = string.ascii_letters + string.digits

ALIAS_MIN_LENGTH = 3
ALIAS_MAX_LENGTH = 20

_ALIAS_RE = re.compile(rf"[A-Za-z0-9]{{{ALIAS_MIN_LENGTH},{ALIAS_MAX_LENGTH}}}")

def generate_random_code(length: int = 6, alphabet: str = ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))

def is_valid_alias(alias: str) -> bool:
    return bool(_ALIAS_RE.fullmatch(alias or ""))

def is_valid_destination(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

def hash_secret(secret: str, iterations: int = 100_000) -> str:
    """Salted PBKDF2 digest in the form ``pbkdf2_sha256$iterations$salt$hash``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode(), bytes.fromhex(salt), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"

def verify_secret(supplied: Optional[str], stored: str) -> bool:
    if supplied is None:
        return False
    try:
        algorithm, iterations, salt, expected = stored.split("$")
        if algorithm != "pbkdf2_sha256":
            return False
        digest = hashlib.pbkdf2_hmac("sha256", supplied.encode(), bytes.fromhex(salt), int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), expected)
