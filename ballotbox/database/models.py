# ballotbox/database/models.py

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional

# Record types owned by the RecordStore


class Role(Enum):
    VOTER = "voter"
    ADMIN = "admin"

    @property
    def code(self) -> int:
        """Integer code used in users.csv."""
        return 1 if self is Role.ADMIN else 0

    @classmethod
    def from_code(cls, code: int) -> 'Role':
        if code == 0:
            return cls.VOTER
        if code == 1:
            return cls.ADMIN
        raise ValueError(f"Unknown role code: {code}")


class Phase(IntEnum):
    CREATED = 0
    REGISTRATION_OPEN = 1
    VOTING_OPEN = 2
    VOTING_CLOSED = 3
    TALLY_COMPLETE = 4  # reserved, never assigned


@dataclass(frozen=True)
class Credential:
    salt: bytes
    hash: bytes

    def __repr__(self):
        return '<Credential salt=... hash=...>'


@dataclass
class User:
    id: int
    name: str
    email: str
    role: Role
    credential: Credential
    active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def __repr__(self):
        return f'<User {self.id} {self.email} ({self.role.value})>'


@dataclass
class Election:
    id: int
    title: str
    description: str
    candidates: List[str] = field(default_factory=list)
    phase: Phase = Phase.CREATED
    start_time: Optional[int] = None
    end_time: Optional[int] = None

    @property
    def candidate_count(self) -> int:
        return len(self.candidates)

    def __repr__(self):
        return f'<Election {self.id} {self.title!r} phase={self.phase.name}>'


@dataclass(frozen=True)
class Vote:
    id: int
    election_id: int
    voter_id: int
    choice: int
    timestamp: Optional[int] = None

    def __repr__(self):
        return f'<Vote {self.id} by User {self.voter_id} in Election {self.election_id}>'
