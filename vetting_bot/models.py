from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from .errors import ValidationError

MAX_NAME_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_]")


class VettingStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    TIMEOUT = "timeout"

    @property
    def terminal(self) -> bool:
        return self is not VettingStatus.PENDING


class CommissionStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(raw: object) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values and a trailing ``Z`` mean UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        parsed = raw
    else:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def sanitize_name(raw: str, *, label: str = "name") -> str:
    """Normalize free text to ``[a-z0-9_]+``.

    Whitespace runs become a single underscore, every other disallowed
    character is dropped.
    """
    lowered = _WHITESPACE.sub("_", (raw or "").strip().lower())
    cleaned = _DISALLOWED.sub("", lowered)[:MAX_NAME_LENGTH]
    if not cleaned:
        raise ValidationError(
            user_message=f"The {label} must contain at least one letter, digit or underscore."
        )
    return cleaned


def mint_id(owner_id: str) -> str:
    """Return ``<owner>-<epoch ms>-<random>``, unique even within one millisecond."""
    return f"{owner_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass(slots=True, frozen=True)
class Actor:
    """Whoever triggered an interaction."""

    id: str
    display_name: str = ""
    is_admin: bool = False

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(slots=True)
class VettingRequest:
    id: str
    user_id: str
    ckey: str
    channel_id: str
    status: VettingStatus = VettingStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    processed_by: str | None = None
    processed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is VettingStatus.PENDING

    def age_days(self, now: datetime | None = None) -> float:
        now = now or utc_now()
        return (now - self.created_at).total_seconds() / 86400

    def to_item(self) -> dict[str, object]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "ckey": self.ckey,
            "channelId": self.channel_id,
            "status": self.status.value,
            "createdAt": format_timestamp(self.created_at),
            "processedBy": self.processed_by,
            "processedAt": format_timestamp(self.processed_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_item(cls, item: dict[str, object]) -> VettingRequest:
        processed_by = item.get("processedBy")
        return cls(
            id=str(item["id"]),
            user_id=str(item["userId"]),
            ckey=str(item.get("ckey", "")),
            channel_id=str(item.get("channelId", "")),
            status=VettingStatus(str(item.get("status", VettingStatus.PENDING))),
            created_at=parse_timestamp(item.get("createdAt")) or utc_now(),
            processed_by=str(processed_by) if processed_by is not None else None,
            processed_at=parse_timestamp(item.get("processedAt")),
            updated_at=parse_timestamp(item.get("updatedAt")),
        )


@dataclass(slots=True)
class Commission:
    id: str
    creator_id: str
    channel_id: str
    channel_name: str
    artwork_thread_id: str | None = None
    reps: list[str] = field(default_factory=list)
    status: CommissionStatus = CommissionStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is CommissionStatus.ACTIVE

    @property
    def display_channel_name(self) -> str:
        return f"commission-{self.channel_name}"

    def has_rep(self, user_id: str) -> bool:
        return user_id in self.reps

    def to_item(self) -> dict[str, object]:
        return {
            "id": self.id,
            "creatorId": self.creator_id,
            "channelId": self.channel_id,
            "channelName": self.channel_name,
            "artworkThreadId": self.artwork_thread_id,
            "reps": list(self.reps),
            "status": self.status.value,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Commission:
        reps: list[str] = []
        for rep in item.get("reps") or []:  # type: ignore[union-attr]
            rep_id = str(rep)
            if rep_id not in reps:
                reps.append(rep_id)
        thread_id = item.get("artworkThreadId")
        return cls(
            id=str(item["id"]),
            creator_id=str(item["creatorId"]),
            channel_id=str(item.get("channelId", "")),
            channel_name=str(item.get("channelName", "")),
            artwork_thread_id=str(thread_id) if thread_id is not None else None,
            reps=reps,
            status=CommissionStatus(str(item.get("status", CommissionStatus.ACTIVE))),
            created_at=parse_timestamp(item.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(item.get("updatedAt")),
        )


__all__ = [
    "Actor",
    "Commission",
    "CommissionStatus",
    "MAX_NAME_LENGTH",
    "VettingRequest",
    "VettingStatus",
    "format_timestamp",
    "mint_id",
    "parse_timestamp",
    "sanitize_name",
    "utc_now",
]
