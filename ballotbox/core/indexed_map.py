# ballotbox/core/indexed_map.py
"""Open-addressing hash map from unsigned 64-bit keys to integer values.

The store uses it for primary-key and uniqueness indices; values are list
offsets into the owning collections, never the records themselves.

Layout:
- Slot array of power-of-two size (minimum 8), linear probing
- Slot states: EMPTY, OCCUPIED, TOMBSTONE
- Deleting a key leaves a TOMBSTONE so probe chains through it stay intact
- Inserting a new key grows the table (capacity doubles) when occupied plus
  tombstone slots would exceed 70% of capacity; growth drops all tombstones

Usage:
    index = IndexedMap()
    index.put(42, 0)
    index.get(42)          # -> 0
    index.delete(42)
    index.get(42)          # raises NotFoundError
"""

from typing import Iterator, Optional, Tuple

from ballotbox.errors import AllocationError, NotFoundError

EMPTY = 0
OCCUPIED = 1
TOMBSTONE = 2

MIN_CAPACITY = 8
MASK64 = (1 << 64) - 1

# Grow when (filled + 1) / capacity would exceed 7/10
_LOAD_NUM = 7
_LOAD_DEN = 10


def mix64(x: int) -> int:
    """64-bit avalanche mix (murmur3 finalizer)."""
    x &= MASK64
    x ^= x >> 33
    x = (x * 0xff51afd7ed558ccd) & MASK64
    x ^= x >> 33
    x = (x * 0xc4ceb9fe1a85ec53) & MASK64
    x ^= x >> 33
    return x


def _round_capacity(capacity: int) -> int:
    n = MIN_CAPACITY
    while n < capacity:
        n <<= 1
    return n


class IndexedMap:
    def __init__(self, capacity: int = MIN_CAPACITY):
        self._capacity = _round_capacity(capacity)
        self._keys = [0] * self._capacity
        self._values = [0] * self._capacity
        self._states = [EMPTY] * self._capacity
        self._size = 0
        self._tombstones = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._size

    def __contains__(self, key) -> bool:
        return self._find(self._check_key(key)) is not None

    def __repr__(self):
        return f'<IndexedMap size={self._size} capacity={self._capacity}>'

    @staticmethod
    def _check_key(key) -> int:
        if not isinstance(key, int) or isinstance(key, bool):
            raise TypeError(f"IndexedMap keys must be int, got {type(key).__name__}")
        if key < 0 or key > MASK64:
            raise ValueError(f"Key {key} is outside the unsigned 64-bit range")
        return key

    def _find(self, key: int) -> Optional[int]:
        """Return the slot holding key, or None on a miss."""
        mask = self._capacity - 1
        idx = mix64(key) & mask
        # Empty slots always exist (load stays below 1), so this terminates.
        while True:
            state = self._states[idx]
            if state == EMPTY:
                return None
            if state == OCCUPIED and self._keys[idx] == key:
                return idx
            idx = (idx + 1) & mask

    def _insert_slot(self, key: int) -> int:
        """Return the slot a new key should go to: first tombstone on its chain, else the terminating empty slot."""
        mask = self._capacity - 1
        idx = mix64(key) & mask
        first_tomb = None
        while True:
            state = self._states[idx]
            if state == EMPTY:
                return first_tomb if first_tomb is not None else idx
            if state == TOMBSTONE and first_tomb is None:
                first_tomb = idx
            idx = (idx + 1) & mask

    def _needs_growth(self) -> bool:
        filled = self._size + self._tombstones
        return (filled + 1) * _LOAD_DEN > self._capacity * _LOAD_NUM

    def _rehash(self, new_capacity: int):
        old_keys, old_values, old_states = self._keys, self._values, self._states
        try:
            keys = [0] * new_capacity
            values = [0] * new_capacity
            states = [EMPTY] * new_capacity
        except MemoryError as e:
            raise AllocationError(f"Cannot grow index to {new_capacity} slots") from e

        self._keys, self._values, self._states = keys, values, states
        self._capacity = new_capacity
        self._size = 0
        self._tombstones = 0
        for key, value, state in zip(old_keys, old_values, old_states):
            if state == OCCUPIED:
                slot = self._insert_slot(key)
                self._keys[slot] = key
                self._values[slot] = value
                self._states[slot] = OCCUPIED
                self._size += 1

    def _store_new(self, key: int, value: int):
        if self._needs_growth():
            self._rehash(self._capacity << 1)
        slot = self._insert_slot(key)
        if self._states[slot] == TOMBSTONE:
            self._tombstones -= 1
        self._keys[slot] = key
        self._values[slot] = value
        self._states[slot] = OCCUPIED
        self._size += 1

    def put(self, key: int, value: int):
        """Insert key, or overwrite its value if already present."""
        key = self._check_key(key)
        slot = self._find(key)
        if slot is not None:
            self._values[slot] = value
            return
        self._store_new(key, value)

    def put_if_absent(self, key: int, value: int) -> bool:
        """Insert key only if missing. Returns False, leaving the map unchanged, when it exists."""
        key = self._check_key(key)
        if self._find(key) is not None:
            return False
        self._store_new(key, value)
        return True

    def get(self, key: int) -> int:
        slot = self._find(self._check_key(key))
        if slot is None:
            raise NotFoundError(f"Key {key} not found")
        return self._values[slot]

    def lookup(self, key: int, default=None):
        """Like get(), but returns default on a miss."""
        slot = self._find(self._check_key(key))
        if slot is None:
            return default
        return self._values[slot]

    def delete(self, key: int):
        slot = self._find(self._check_key(key))
        if slot is None:
            raise NotFoundError(f"Key {key} not found")
        self._states[slot] = TOMBSTONE
        self._size -= 1
        self._tombstones += 1

    def items(self) -> Iterator[Tuple[int, int]]:
        """Yield (key, value) for occupied slots in slot order."""
        for key, value, state in zip(self._keys, self._values, self._states):
            if state == OCCUPIED:
                yield key, value

    def clear(self):
        self._capacity = MIN_CAPACITY
        self._keys = [0] * MIN_CAPACITY
        self._values = [0] * MIN_CAPACITY
        self._states = [EMPTY] * MIN_CAPACITY
        self._size = 0
        self._tombstones = 0
