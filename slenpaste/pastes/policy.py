from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from slenpaste.core.errors import ValidationError

# At most 18 digits per group; anything longer overflows timedelta anyway.
_DURATION_RE = re.compile(r"(?:[0-9]{1,18}[hms])+")
_DURATION_PART_RE = re.compile(r"([0-9]{1,18})([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}

NEVER_SELECTORS = ("", "0")
VIEW_SELECTOR = "view"


class ExpiryKind(str, Enum):
    NEVER = "never"
    TIMED = "timed"
    ON_VIEW = "view"


class ExpiryPolicy(BaseModel):
    """
    Expiry rule for one paste; also the JSON shape of its sidecar record.

    Build instances through never()/timed()/on_view() so a policy is only
    ever one of the three.
    """
    expiry: Optional[datetime] = None
    expire_on_view: bool = False

    @field_validator("expiry")
    @classmethod
    def _normalize_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        # Go's zero time.Time serializes as 0001-01-01T00:00:00Z: "not timed".
        if v.year <= 1:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @classmethod
    def never(cls) -> "ExpiryPolicy":
        return cls()

    @classmethod
    def timed(cls, expires_at: datetime) -> "ExpiryPolicy":
        return cls(expiry=expires_at)

    @classmethod
    def on_view(cls) -> "ExpiryPolicy":
        return cls(expire_on_view=True)

    @property
    def kind(self) -> ExpiryKind:
        if self.expire_on_view:
            return ExpiryKind.ON_VIEW
        if self.expiry is not None:
            return ExpiryKind.TIMED
        return ExpiryKind.NEVER

    @property
    def is_never(self) -> bool:
        return self.kind is ExpiryKind.NEVER

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and now >= self.expiry

    def to_record(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_record(cls, data: bytes) -> "ExpiryPolicy":
        """Raises pydantic.ValidationError on malformed records."""
        return cls.model_validate_json(data)


def parse_duration(text: str) -> timedelta:
    """
    Parse "<int><unit>" groups (units h, m, s), e.g. "5m", "24h", "1h30m".
    """
    raw = (text or "").strip()
    if not _DURATION_RE.fullmatch(raw):
        raise ValidationError(f"Invalid expiry: {raw!r}")

    seconds = sum(int(n) * _UNIT_SECONDS[u] for n, u in _DURATION_PART_RE.findall(raw))
    if seconds <= 0:
        raise ValidationError(f"Expiry must be positive: {raw!r}")
    try:
        return timedelta(seconds=seconds)
    except OverflowError as exc:
        raise ValidationError(f"Expiry too large: {raw!r}") from exc


def parse_selector(selector: Optional[str], now: datetime) -> ExpiryPolicy:
    """
    Map an upload's expiry selector onto a policy.

    "" / "0" -> never, "view" -> on view, anything else must be a duration
    and becomes an absolute deadline relative to `now`.
    """
    value = (selector or "").strip()
    if value in NEVER_SELECTORS:
        return ExpiryPolicy.never()
    if value.lower() == VIEW_SELECTOR:
        return ExpiryPolicy.on_view()
    delta = parse_duration(value)
    try:
        return ExpiryPolicy.timed(now + delta)
    except OverflowError as exc:
        raise ValidationError(f"Expiry too large: {value!r}") from exc
