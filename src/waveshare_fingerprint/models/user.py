"""Enrolled-user model."""

from __future__ import annotations

from dataclasses import dataclass

from ..protocol.commands import (
    MAX_PRIVILEGE,
    MAX_USER_ID,
    MIN_PRIVILEGE,
    MIN_USER_ID,
)


@dataclass
class UserTemplate:
    """A user stored on the module together with their fingerprint template."""

    user_id: int
    privilege: int
    eigenvalues: bytes = b""

    def __post_init__(self) -> None:
        if not MIN_USER_ID <= self.user_id <= MAX_USER_ID:
            raise ValueError(
                f"user_id must be {MIN_USER_ID}-{MAX_USER_ID}, got {self.user_id}"
            )
        if not MIN_PRIVILEGE <= self.privilege <= MAX_PRIVILEGE:
            raise ValueError(
                f"privilege must be {MIN_PRIVILEGE}-{MAX_PRIVILEGE}, got {self.privilege}"
            )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "privilege": self.privilege,
            "eigenvalues": self.eigenvalues.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> UserTemplate:
        try:
            return cls(
                user_id=int(data["user_id"]),
                privilege=int(data["privilege"]),
                eigenvalues=bytes.fromhex(data.get("eigenvalues", "")),
            )
        except KeyError as e:
            raise ValueError(f"User entry is missing {e}") from e
