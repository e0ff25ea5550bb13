from __future__ import annotations

import os
import re
import secrets
import string
from typing import Optional

ALPHABET = string.ascii_letters + string.digits
META_SUFFIX = ".meta"
MAX_EXTENSION_CHARS = 16

# Every stored locator is "<id>.<ext>", so "<locator>.meta" never validates.
_LOCATOR_RE = re.compile(r"[A-Za-z0-9]{1,64}\.[A-Za-z0-9]{1,%d}" % MAX_EXTENSION_CHARS)


def generate_id(length: int = 6) -> str:
    """Random opaque id of `length` alphanumeric characters."""
    if length < 1:
        raise ValueError("id length must be >= 1")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def safe_extension(filename: Optional[str], default: str = ".txt") -> str:
    """
    Extension of a caller-supplied filename, clamped to ".<alnum>".

    Anything that survives is safe to append to a storage key; otherwise
    `default` is returned.
    """
    base = os.path.basename((filename or "").replace("\\", "/"))
    ext = os.path.splitext(base)[1]
    cleaned = "".join(c for c in ext if c in ALPHABET)[:MAX_EXTENSION_CHARS]
    if not cleaned:
        return default
    return "." + cleaned


def is_valid_locator(locator: str) -> bool:
    return bool(locator) and _LOCATOR_RE.fullmatch(locator) is not None


def metadata_key(locator: str) -> str:
    return locator + META_SUFFIX
