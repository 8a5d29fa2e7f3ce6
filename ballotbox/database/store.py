# ballotbox/database/store.py
"""In-process record store for users, elections and votes.

The store owns three ordered collections and four derived indices built on
IndexedMap. Index values are offsets into the owning lists, so every index
entry points at exactly one record and indices can be rebuilt from the lists
at any time.

Indices:
- user_by_id:     user id          -> offset in users
- user_by_email:  fnv1a64(email)   -> offset in users
- election_by_id: election id      -> offset in elections
- has_voted:      vote_key(e, v)   -> 1 (presence only)

The store performs no authorization or phase checks; ElectionService does.
"""

import logging
from typing import Iterator, List, Optional

from ballotbox import config
from ballotbox.core.indexed_map import IndexedMap, MASK64
from ballotbox.database.models import Election, User, Vote
from ballotbox.errors import (
    AdminLimitExceededError,
    DuplicateEmailError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

_FNV_OFFSET = 1469598103934665603
_FNV_PRIME = 1099511628211


def email_hash64(email: str) -> int:
    """64-bit FNV-1a over the UTF-8 bytes of email (case-sensitive)."""
    h = _FNV_OFFSET
    for byte in email.encode('utf-8'):
        h ^= byte
        h = (h * _FNV_PRIME) & MASK64
    return h


def vote_key(election_id: int, voter_id: int) -> int:
    """Dedup key for one (election, voter) pair; voter ids fold into 32 bits."""
    return ((election_id << 32) ^ (voter_id & 0xffffffff)) & MASK64


class RecordStore:
    def __init__(self, admin_pin: str = None):
        self.admin_pin = config.ADMIN_PIN if admin_pin is None else admin_pin
        self.users: List[User] = []
        self.elections: List[Election] = []
        self.votes: List[Vote] = []
        self.user_by_id = IndexedMap(64)
        self.user_by_email = IndexedMap(64)
        self.election_by_id = IndexedMap(64)
        self.has_voted = IndexedMap(64)
        self.admin_exists = False
        self.next_user_id = 1
        self.next_election_id = 1
        self.next_vote_id = 1

    def __repr__(self):
        return (f'<RecordStore users={len(self.users)} elections={len(self.elections)} '
                f'votes={len(self.votes)}>')

    def clear(self):
        """Drop every record and reset watermarks; the admin PIN is kept."""
        self.users.clear()
        self.elections.clear()
        self.votes.clear()
        self.user_by_id.clear()
        self.user_by_email.clear()
        self.election_by_id.clear()
        self.has_voted.clear()
        self.admin_exists = False
        self.next_user_id = 1
        self.next_election_id = 1
        self.next_vote_id = 1

    # ------------------------------ ids ------------------------------ #

    def allocate_user_id(self) -> int:
        user_id = self.next_user_id
        self.next_user_id += 1
        return user_id

    def allocate_election_id(self) -> int:
        election_id = self.next_election_id
        self.next_election_id += 1
        return election_id

    def allocate_vote_id(self) -> int:
        vote_id = self.next_vote_id
        self.next_vote_id += 1
        return vote_id

    # ----------------------------- users ----------------------------- #

    def find_user(self, user_id: int) -> Optional[User]:
        offset = self.user_by_id.lookup(user_id)
        return None if offset is None else self.users[offset]

    def find_user_by_email(self, email: str) -> Optional[User]:
        offset = self.user_by_email.lookup(email_hash64(email))
        if offset is None:
            return None
        user = self.users[offset]
        if user.email != email:
            # Hash collision with a different address
            logger.warning("Email hash collision between %r and %r", email, user.email)
            return None
        return user

    def get_user(self, user_id: int) -> User:
        user = self.find_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def email_taken(self, email: str) -> bool:
        return email_hash64(email) in self.user_by_email

    def add_user(self, user: User):
        """Append a user and index it; enforces email and admin uniqueness."""
        if self.email_taken(user.email):
            raise DuplicateEmailError(f"Email already registered: {user.email}")
        if user.is_admin and self.admin_exists:
            raise AdminLimitExceededError("Only one admin is allowed")
        if user.id in self.user_by_id:
            raise ValueError(f"Duplicate user id {user.id}")

        offset = len(self.users)
        self.users.append(user)
        self.user_by_id.put(user.id, offset)
        self.user_by_email.put(email_hash64(user.email), offset)
        if user.is_admin:
            self.admin_exists = True
        if user.id >= self.next_user_id:
            self.next_user_id = user.id + 1

    # --------------------------- elections --------------------------- #

    def find_election(self, election_id: int) -> Optional[Election]:
        offset = self.election_by_id.lookup(election_id)
        return None if offset is None else self.elections[offset]

    def get_election(self, election_id: int) -> Election:
        election = self.find_election(election_id)
        if election is None:
            raise NotFoundError(f"Election {election_id} not found")
        return election

    def add_election(self, election: Election):
        if election.id in self.election_by_id:
            raise ValueError(f"Duplicate election id {election.id}")
        self.election_by_id.put(election.id, len(self.elections))
        self.elections.append(election)
        if election.id >= self.next_election_id:
            self.next_election_id = election.id + 1

    # ----------------------------- votes ----------------------------- #

    def has_vote(self, election_id: int, voter_id: int) -> bool:
        return vote_key(election_id, voter_id) in self.has_voted

    def mark_voted(self, election_id: int, voter_id: int) -> bool:
        """Insert-if-absent on the dedup index. False means the pair already voted."""
        return self.has_voted.put_if_absent(vote_key(election_id, voter_id), 1)

    def add_vote(self, vote: Vote):
        """Append a vote whose dedup entry was already claimed with mark_voted()."""
        self.votes.append(vote)
        if vote.id >= self.next_vote_id:
            self.next_vote_id = vote.id + 1

    def votes_for(self, election_id: int) -> Iterator[Vote]:
        return (vote for vote in self.votes if vote.election_id == election_id)

    def count_votes(self, election: Election) -> List[int]:
        """Per-candidate counts; choices outside the candidate list are ignored."""
        counts = [0] * election.candidate_count
        for vote in self.votes_for(election.id):
            if 0 <= vote.choice < len(counts):
                counts[vote.choice] += 1
        return counts

