# ballotbox/core/selection_tree.py

from typing import List, Sequence

# Max-reduction tournament tree over per-candidate counts

# Padding leaf; below any real value, negative counts included
PAD = float("-inf")


def _next_pow2(n: int) -> int:
    p = 1
    while p < n:
        p <<= 1
    return p


class SelectionTree:
    """Binary max tree; root at index 1, children of i at 2i and 2i+1.

    Leaves are padded with PAD up to the next power of two, so the root is
    always the value of a real leaf.
    """

    def __init__(self, leaves: Sequence[int]):
        if len(leaves) == 0:
            raise ValueError("SelectionTree needs at least one leaf")
        self.leaf_count = len(leaves)
        self._base = _next_pow2(self.leaf_count)
        self._tree: List[int] = [PAD] * (self._base * 2)
        for i, value in enumerate(leaves):
            self._tree[self._base + i] = value
        for i in range(self._base - 1, 0, -1):
            self._tree[i] = max(self._tree[2 * i], self._tree[2 * i + 1])

    @property
    def maximum(self) -> int:
        return self._tree[1]

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._tree[self._base + index]

    def leaves(self) -> List[int]:
        return self._tree[self._base:self._base + self.leaf_count]

    def _check_index(self, index: int):
        if index < 0 or index >= self.leaf_count:
            raise IndexError(f"Leaf index {index} out of range 0..{self.leaf_count - 1}")

    def update(self, index: int, value: int):
        """Set one leaf and recompute its ancestors in O(log n)."""
        self._check_index(index)
        pos = self._base + index
        self._tree[pos] = value
        while pos > 1:
            pos >>= 1
            self._tree[pos] = max(self._tree[2 * pos], self._tree[2 * pos + 1])

    def increment(self, index: int, amount: int = 1):
        self.update(index, self.leaf(index) + amount)

    def winner(self) -> int:
        """Index of the first leaf equal to the maximum; lowest index wins ties."""
        return self.leaves().index(self._tree[1])
