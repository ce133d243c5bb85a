"""Subject identity types shared by the ledger, cosmetics and auth layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from typing import Any, Optional

from config import settings


class SubjectType(str, Enum):
    THIRD_PARTY = "third_party"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Subject:
    """The (id, kind) pair every token operation is keyed on."""

    kind: SubjectType
    id: str

    @property
    def is_anonymous(self) -> bool:
        return self.kind is SubjectType.ANONYMOUS

    def as_dict(self) -> dict:
        return {"subjectId": self.id, "subjectType": self.kind.value}


def parse_subject_type(value: Any) -> SubjectType:
    """Map a raw subject type string onto ``SubjectType``.

    ``clerk`` is accepted as a legacy alias for third-party identities.
    """
    text = str(value or "").strip().lower()
    if text in {"clerk", "third-party"}:
        text = SubjectType.THIRD_PARTY.value
    return SubjectType(text)


_USERNAME_BODY_PATTERN = re.compile(r"^[a-z0-9._-]{1,32}$")


def normalize_username(value: Any) -> str:
    """Trim and lowercase a username for storage and comparison."""
    return str(value or "").strip().lower()


def username_problem(username: str) -> Optional[str]:
    """Return a human-readable reason when a normalized username is invalid."""
    prefix = settings.ANON_USERNAME_PREFIX
    if not username.startswith(prefix):
        return f"Username must start with '{prefix}'"
    body = username[len(prefix):]
    if not body:
        return f"Username must have characters after '{prefix}'"
    if not _USERNAME_BODY_PATTERN.match(body):
        return "Username may only contain letters, numbers, '.', '_' or '-' (max 32 after the prefix)"
    return None
