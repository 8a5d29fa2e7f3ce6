# ballotbox/__init__.py

__version__ = '0.1.0'

from ballotbox.database.store import RecordStore  # noqa: E402
from ballotbox.election.lifecycle import ElectionService  # noqa: E402

__all__ = ['ElectionService', 'RecordStore', '__version__']
