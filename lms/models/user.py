from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    full_name: str | None
    created_at: int

    @staticmethod
    def new(*, email: str, created_at: int, full_name: str | None = None) -> User:
        return User(
            id=uuid4(),
            email=normalize_email(email),
            full_name=full_name,
            created_at=created_at,
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()
