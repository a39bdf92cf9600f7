"""Correspondent profile model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Gender(str, Enum):
    """Grammatical gender hint used when addressing a correspondent."""

    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "Gender":
        """Map a free-form classifier answer onto a Gender."""
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().strip(".").lower()
        for member in cls:
            if normalized == member.value:
                return member
        return cls.UNKNOWN


@dataclass
class CorrespondentProfile:
    """Long-lived cached attributes of a correspondent."""

    name: str | None = None
    gender: Gender = Gender.UNKNOWN
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_known(self) -> bool:
        return bool(self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "gender": self.gender.value,
            "saved_at": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CorrespondentProfile":
        saved_at = data.get("saved_at")
        return cls(
            name=data.get("name"),
            gender=Gender.parse(data.get("gender")),
            saved_at=(
                datetime.fromisoformat(saved_at)
                if saved_at
                else datetime.now(timezone.utc)
            ),
        )
