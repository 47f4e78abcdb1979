"""Integer indices on the dyadic grids of a hierarchical mesh.

A cell index `i` on level `l` corresponds to the cells `2*i` and `2*i+1` on
level `l+1`; knot (corner) indices behave the same way. Converting between
levels is therefore a bit shift: to the left when going to a finer level,
to the right (rounding down) when going to a coarser one.
"""
from collections import namedtuple

import numpy as np


def _shift(value, diff):
    if diff >= 0:
        return value << diff
    else:
        return value >> -diff

class LevelIndex(namedtuple('LevelIndex', ['value', 'level'])):
    """An integer index `value` on the grid of refinement level `level`."""
    __slots__ = ()

    def __new__(cls, value, level):
        value, level = int(value), int(level)
        if value < 0 or level < 0:
            raise ValueError('level indices must be non-negative, got %d on level %d'
                    % (value, level))
        return super().__new__(cls, value, level)

    def at_level(self, level):
        """Express this index on `level`. Coarsening rounds down."""
        return LevelIndex(_shift(self.value, level - self.level), level)

    def is_exact_on(self, level):
        """True if no information is lost when moving to `level`."""
        return self.at_level(level).at_level(self.level) == self

    def __eq__(self, other):
        if not isinstance(other, LevelIndex):
            return NotImplemented
        L = max(self.level, other.level)
        return _shift(self.value, L - self.level) == _shift(other.value, L - other.level)

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __lt__(self, other):
        L = max(self.level, other.level)
        return _shift(self.value, L - self.level) < _shift(other.value, L - other.level)

    def __hash__(self):
        # normalize to the coarsest level on which the index is exact
        v, l = self.value, self.level
        while l > 0 and v % 2 == 0:
            v, l = v >> 1, l - 1
        return hash((v, l))


def rescale(values, from_level, to_level):
    """Convert an integer array of indices from one level to another."""
    values = np.asarray(values, dtype=np.int64)
    if np.any(values < 0):
        raise ValueError('level indices must be non-negative')
    diff = int(to_level) - int(from_level)
    if diff >= 0:
        return np.left_shift(values, diff)
    else:
        return np.right_shift(values, -diff)

def reflect(lo, up, upper):
    """Mirror the index interval `[lo, up)` within `[0, upper)`."""
    return upper - up, upper - lo
