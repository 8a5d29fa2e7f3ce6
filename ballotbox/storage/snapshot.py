# ballotbox/storage/snapshot.py
"""Save and restore a RecordStore as a directory of CSV resources.

Resources (first row of each is a column header, skipped on load):
- header.csv:    admin_exists, admin_pin, next_user_id, next_election_id, next_vote_id
- users.csv:     id, name, email, role, active, salt_hex, hash_hex
- elections.csv: id, title, description, phase, candidate_count, candidates, start_time, end_time
- votes.csv:     id, election_id, voter_id, choice, timestamp

Numbers are base-10 ASCII. Role is 0 (voter) or 1 (admin); flags are 0/1.
Candidates are joined with config.CANDIDATE_DELIMITER. Salt and hash are
lowercase hex of fixed width. Trailing time columns may be empty or absent.

Loading is best-effort: a row that does not parse, or that would break a
uniqueness rule (duplicate id or email, second admin, second vote by the same
voter in the same election), is logged and skipped. Indices are never stored;
they are rebuilt as rows are added back to the store.

Usage:
    save_snapshot(store, 'data')
    fresh = RecordStore()
    load_snapshot(fresh, 'data')
"""

import csv
import logging
import os
import re
from typing import List, Optional

from ballotbox import config
from ballotbox.core.indexed_map import IndexedMap
from ballotbox.database.models import Credential, Election, Phase, Role, User, Vote
from ballotbox.database.store import RecordStore
from ballotbox.errors import BallotBoxError, StorageIOError

logger = logging.getLogger(__name__)

HEADER_FILE = 'header.csv'
USERS_FILE = 'users.csv'
ELECTIONS_FILE = 'elections.csv'
VOTES_FILE = 'votes.csv'

HEADER_COLUMNS = ['admin_exists', 'admin_pin', 'next_user_id', 'next_election_id', 'next_vote_id']
USER_COLUMNS = ['id', 'name', 'email', 'role', 'active', 'salt_hex', 'hash_hex']
ELECTION_COLUMNS = ['id', 'title', 'description', 'phase', 'candidate_count', 'candidates',
                    'start_time', 'end_time']
VOTE_COLUMNS = ['id', 'election_id', 'voter_id', 'choice', 'timestamp']

_DIGITS = re.compile(r'^[0-9]+$')
_HEX = re.compile(r'^[0-9a-f]*$')


# ------------------------------ fields ------------------------------ #

def _parse_int(value: str) -> int:
    if not _DIGITS.match(value):
        raise ValueError(f"Not a base-10 integer: {value!r}")
    return int(value)


def _parse_optional_int(row: List[str], index: int) -> Optional[int]:
    if index >= len(row) or row[index] == '':
        return None
    return _parse_int(row[index])


def _parse_flag(value: str) -> bool:
    if value not in ('0', '1'):
        raise ValueError(f"Not a 0/1 flag: {value!r}")
    return value == '1'


def _parse_hex(value: str, width: int) -> bytes:
    if len(value) != width * 2 or not _HEX.match(value):
        raise ValueError(f"Expected {width * 2} lowercase hex digits, got {value!r}")
    return bytes.fromhex(value)


def _format_optional(value: Optional[int]) -> str:
    return '' if value is None else str(value)


# ------------------------------- rows ------------------------------- #

def encode_user(user: User) -> List[str]:
    return [
        str(user.id),
        user.name,
        user.email,
        str(user.role.code),
        '1' if user.active else '0',
        user.credential.salt.hex(),
        user.credential.hash.hex(),
    ]


def decode_user(row: List[str]) -> User:
    if len(row) < len(USER_COLUMNS):
        raise ValueError(f"User row has {len(row)} fields, expected {len(USER_COLUMNS)}")
    return User(
        id=_parse_int(row[0]),
        name=row[1],
        email=row[2],
        role=Role.from_code(_parse_int(row[3])),
        active=_parse_flag(row[4]),
        credential=Credential(
            salt=_parse_hex(row[5], config.SALT_LEN),
            hash=_parse_hex(row[6], config.HASH_LEN),
        ),
    )


def encode_election(election: Election) -> List[str]:
    return [
        str(election.id),
        election.title,
        election.description,
        str(int(election.phase)),
        str(election.candidate_count),
        config.CANDIDATE_DELIMITER.join(election.candidates),
        _format_optional(election.start_time),
        _format_optional(election.end_time),
    ]


def decode_election(row: List[str]) -> Election:
    if len(row) < 6:
        raise ValueError(f"Election row has {len(row)} fields, expected at least 6")
    candidate_count = _parse_int(row[4])
    candidates = row[5].split(config.CANDIDATE_DELIMITER) if row[5] else []
    if candidate_count == 0 or candidate_count != len(candidates):
        raise ValueError(f"candidate_count {candidate_count} does not match {len(candidates)} names")
    return Election(
        id=_parse_int(row[0]),
        title=row[1],
        description=row[2],
        phase=Phase(_parse_int(row[3])),
        candidates=candidates,
        start_time=_parse_optional_int(row, 6),
        end_time=_parse_optional_int(row, 7),
    )


def encode_vote(vote: Vote) -> List[str]:
    return [
        str(vote.id),
        str(vote.election_id),
        str(vote.voter_id),
        str(vote.choice),
        _format_optional(vote.timestamp),
    ]


def decode_vote(row: List[str]) -> Vote:
    if len(row) < 4:
        raise ValueError(f"Vote row has {len(row)} fields, expected at least 4")
    return Vote(
        id=_parse_int(row[0]),
        election_id=_parse_int(row[1]),
        voter_id=_parse_int(row[2]),
        choice=_parse_int(row[3]),
        timestamp=_parse_optional_int(row, 4),
    )


# ------------------------------ files ------------------------------- #

def _write_rows(path: str, columns: List[str], rows):
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f, lineterminator='\n')
        writer.writerow(columns)
        writer.writerows(rows)


def _read_rows(path: str) -> List[List[str]]:
    """Data rows of one resource; a missing file reads as empty."""
    if not os.path.exists(path):
        logger.info(f"Snapshot resource {path} missing, treating as empty")
        return []
    rows = []
    with open(path, newline='', encoding='utf-8', errors='replace') as f:
        reader = csv.reader(f)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                logger.warning(f"Skipping unreadable line in {path}: {str(e)}")
                continue
            rows.append(row)
    return rows[1:]


def save_snapshot(store: RecordStore, directory: str):
    try:
        os.makedirs(directory, exist_ok=True)
        _write_rows(os.path.join(directory, HEADER_FILE), HEADER_COLUMNS, [[
            '1' if store.admin_exists else '0',
            store.admin_pin,
            str(store.next_user_id),
            str(store.next_election_id),
            str(store.next_vote_id),
        ]])
        _write_rows(os.path.join(directory, USERS_FILE), USER_COLUMNS,
                    (encode_user(u) for u in store.users))
        _write_rows(os.path.join(directory, ELECTIONS_FILE), ELECTION_COLUMNS,
                    (encode_election(e) for e in store.elections))
        _write_rows(os.path.join(directory, VOTES_FILE), VOTE_COLUMNS,
                    (encode_vote(v) for v in store.votes))
    except OSError as e:
        raise StorageIOError(f"Failed to save snapshot to {directory}: {str(e)}") from e
    logger.info(f"Saved snapshot to {directory} ({len(store.users)} users, "
                f"{len(store.elections)} elections, {len(store.votes)} votes)")


def load_snapshot(store: RecordStore, directory: str):
    """Replace the contents of store with the snapshot in directory."""
    try:
        header_rows = _read_rows(os.path.join(directory, HEADER_FILE))
        user_rows = _read_rows(os.path.join(directory, USERS_FILE))
        election_rows = _read_rows(os.path.join(directory, ELECTIONS_FILE))
        vote_rows = _read_rows(os.path.join(directory, VOTES_FILE))
    except OSError as e:
        raise StorageIOError(f"Failed to load snapshot from {directory}: {str(e)}") from e

    store.clear()
    skipped = 0

    watermarks = (1, 1, 1)
    header_admin = None
    if header_rows:
        row = header_rows[0]
        try:
            if len(row) < len(HEADER_COLUMNS):
                raise ValueError(f"Header row has {len(row)} fields")
            header_admin = _parse_flag(row[0])
            watermarks = (_parse_int(row[2]), _parse_int(row[3]), _parse_int(row[4]))
            store.admin_pin = row[1]
        except ValueError as e:
            logger.warning(f"Ignoring malformed snapshot header: {str(e)}")
            skipped += 1

    for row in user_rows:
        try:
            store.add_user(decode_user(row))
        except (ValueError, BallotBoxError) as e:
            logger.warning(f"Skipping user row {row[:1]}: {str(e)}")
            skipped += 1
    if header_admin is not None and header_admin != store.admin_exists:
        logger.warning(f"Header admin flag {header_admin} disagrees with loaded users; using users")

    for row in election_rows:
        try:
            store.add_election(decode_election(row))
        except ValueError as e:
            logger.warning(f"Skipping election row {row[:1]}: {str(e)}")
            skipped += 1

    seen_vote_ids = IndexedMap(max(8, len(vote_rows) * 2))
    for row in vote_rows:
        try:
            vote = decode_vote(row)
            fresh_id = seen_vote_ids.put_if_absent(vote.id, 1)
        except ValueError as e:
            logger.warning(f"Skipping vote row {row[:1]}: {str(e)}")
            skipped += 1
            continue
        if not fresh_id:
            logger.warning(f"Skipping vote {vote.id}: duplicate vote id")
            skipped += 1
            continue
        if not store.mark_voted(vote.election_id, vote.voter_id):
            logger.warning(f"Skipping vote {vote.id}: voter {vote.voter_id} already voted "
                           f"in election {vote.election_id}")
            skipped += 1
            continue
        store.add_vote(vote)

    store.next_user_id = max(store.next_user_id, watermarks[0])
    store.next_election_id = max(store.next_election_id, watermarks[1])
    store.next_vote_id = max(store.next_vote_id, watermarks[2])

    logger.info(f"Loaded snapshot from {directory} ({len(store.users)} users, "
                f"{len(store.elections)} elections, {len(store.votes)} votes, {skipped} rows skipped)")
    return skipped


def export_votes_csv(store: RecordStore, path: str) -> int:
    """Write the votes table to path for external aggregation. Returns the row count."""
    try:
        _write_rows(path, VOTE_COLUMNS, (encode_vote(v) for v in store.votes))
    except OSError as e:
        raise StorageIOError(f"Failed to export votes to {path}: {str(e)}") from e
    return len(store.votes)
