# ballotbox/tally/tally.py

import csv
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from ballotbox.core.indexed_map import IndexedMap
from ballotbox.core.selection_tree import SelectionTree
from ballotbox.database.models import Election

logger = logging.getLogger(__name__)


@dataclass
class TallyResult:
    election_id: int
    title: str
    candidates: List[str]
    counts: List[int]
    winner_index: int
    total_votes: int = 0
    percentages: List[float] = field(default_factory=list)

    @property
    def winner_name(self) -> str:
        return self.candidates[self.winner_index]

    @property
    def winner_votes(self) -> int:
        return self.counts[self.winner_index]


def tally_winner(counts: Sequence[int]) -> int:
    """Index of the highest count; the lowest index wins ties.

    >>> tally_winner([3, 7, 2, 7])
    1
    """
    return SelectionTree(counts).winner()


def tally_election(election: Election, counts: Sequence[int]) -> TallyResult:
    counts = list(counts)
    total = sum(counts)
    if total:
        percentages = [round(count * 100.0 / total, 2) for count in counts]
    else:
        percentages = [0.0] * len(counts)
    return TallyResult(
        election_id=election.id,
        title=election.title,
        candidates=list(election.candidates),
        counts=counts,
        winner_index=tally_winner(counts),
        total_votes=total,
        percentages=percentages,
    )


def aggregate_vote_exports(paths: Iterable[str]) -> Dict[Tuple[int, int], int]:
    """Re-derive per-(election, choice) counts from one or more votes exports.

    Each file has the votes.csv columns (id, election_id, voter_id, choice, ...).
    Unreadable files and malformed rows are skipped.
    """
    counts = IndexedMap(128)
    for path in paths:
        try:
            with open(path, newline='') as f:
                for row in csv.reader(f):
                    if not row or row[0] == 'id':
                        continue
                    try:
                        election_id = int(row[1])
                        choice = int(row[3])
                    except (IndexError, ValueError):
                        logger.warning(f"Skipping malformed row in {path}: {row!r}")
                        continue
                    if not (0 <= election_id <= 0xffffffff and 0 <= choice <= 0xffffffff):
                        logger.warning(f"Skipping out-of-range row in {path}: {row!r}")
                        continue
                    key = (election_id << 32) | choice
                    counts.put(key, counts.lookup(key, 0) + 1)
        except OSError as e:
            logger.warning(f"Could not open {path}: {str(e)}")
            continue

    return {(key >> 32, key & 0xffffffff): value for key, value in sorted(counts.items())}
