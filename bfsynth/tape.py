"""
bfsynth Tape

An unbounded byte tape built from two stacks. The right stack's top is
always the head cell; the left stack holds every cell to the left of the
head with the nearest one on top. Cells that have never been visited are
synthesized as zeros on demand, so the tape never runs out in either
direction.
"""

from typing import List, Tuple


class Tape:
    """
    Bidirectionally infinite tape of unsigned bytes with a single head.

    Features:
    - O(1) head movement in both directions
    - Modulo-256 wraparound on increment/decrement
    - Zero-fill of unvisited cells
    """

    def __init__(self):
        self._left: List[int] = []
        self._right: List[int] = [0]
        self.position = 0

    def move_left(self) -> None:
        """Shift the head one cell to the left."""
        self._right.append(self._left.pop() if self._left else 0)
        self.position -= 1

    def move_right(self) -> None:
        """Shift the head one cell to the right."""
        self._left.append(self._right.pop())
        if not self._right:
            self._right.append(0)
        self.position += 1

    def increment(self) -> None:
        self._right[-1] = (self._right[-1] + 1) % 256

    def decrement(self) -> None:
        self._right[-1] = (self._right[-1] - 1) % 256

    def put(self, value: int) -> None:
        """
        Overwrite the head cell.

        Raises:
            ValueError: If value is not a byte (0-255)
        """
        if not 0 <= value < 256:
            raise ValueError(f"Tape cells hold bytes, got {value}")
        self._right[-1] = value

    def get(self) -> int:
        return self._right[-1]

    def is_zero(self) -> bool:
        return self._right[-1] == 0

    def cells(self) -> Tuple[List[int], int]:
        """
        Materialize the visited part of the tape.

        Returns:
            Tuple of (cells left-to-right, index of the head in that list)
        """
        return self._left + self._right[::-1], len(self._left)

    def copy(self) -> 'Tape':
        """Return an independent snapshot of this tape."""
        clone = Tape()
        clone._left = list(self._left)
        clone._right = list(self._right)
        clone.position = self.position
        return clone

    def _content(self) -> Tuple[List[int], int]:
        """Visited cells with zero padding trimmed from both ends, and the head index."""
        cells, head = self.cells()
        start, end = 0, len(cells)
        while start < end and cells[start] == 0:
            start += 1
        while end > start and cells[end - 1] == 0:
            end -= 1
        if start == end:
            return [], 0
        return cells[start:end], head - start

    def __eq__(self, other):
        if not isinstance(other, Tape):
            return NotImplemented
        return (self.position == other.position
                and self._content() == other._content())

    def __repr__(self):
        cells, head = self.cells()
        return f"Tape(cells={cells}, head={head})"
