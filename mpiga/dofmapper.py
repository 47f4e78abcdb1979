"""Numbering of the degrees of freedom of a multipatch discretization.

Each patch numbers its basis functions locally. A :class:`DofMapper` glues
functions of different patches which coincide on interfaces into a single
global dof and moves dofs carrying Dirichlet conditions to the end of the
numbering, where they are eliminated from the linear system.
"""
import numpy as np

from .errors import MapperFinalizedError


class DofMapper:
    """Maps `(local index, patch)` pairs to global dof indices.

    Args:
        sizes: the number of local functions of every patch

    After :meth:`finalize`, the free dofs are numbered `0, ..., free_size-1`
    and the eliminated dofs `free_size, ..., size-1`. Both groups are ordered
    by the first `(patch, local index)` pair belonging to them.
    """
    def __init__(self, sizes):
        self.sizes = np.array(sizes, dtype=int)
        self.offsets = np.concatenate(([0], np.cumsum(self.sizes))).astype(int)
        n = int(self.offsets[-1])
        self._parent = np.arange(n)
        self._elim = np.zeros(n, dtype=bool)
        self._dofs = None
        self._free_size = None
        self._size = None

    def __repr__(self):
        if self.is_finalized:
            return '<DofMapper patches=%d size=%d free=%d>' % (self.num_patches, self.size, self.free_size)
        return '<DofMapper patches=%d (not finalized)>' % self.num_patches

    @property
    def num_patches(self):
        return len(self.sizes)

    def patch_size(self, p):
        return int(self.sizes[p])

    @property
    def is_finalized(self):
        return self._dofs is not None

    def _check_mutable(self):
        if self.is_finalized:
            raise MapperFinalizedError('the DofMapper has already been finalized')

    def _check_final(self):
        if not self.is_finalized:
            raise RuntimeError('the DofMapper has not been finalized')

    def _raw(self, i, p):
        i = np.asarray(i, dtype=int)
        if np.any(i < 0) or np.any(i >= self.sizes[p]):
            raise IndexError('local index out of range for patch %d of size %d' % (p, self.sizes[p]))
        return self.offsets[p] + i

    def _find(self, k):
        root = k
        while self._parent[root] != root:
            root = self._parent[root]
        # path compression
        while self._parent[k] != root:
            self._parent[k], k = root, self._parent[k]
        return root

    def match_dofs(self, p1, idx1, p2, idx2):
        """Identify the functions `idx1` of patch `p1` with the functions
        `idx2` of patch `p2`, pairwise."""
        self._check_mutable()
        raw1 = np.atleast_1d(self._raw(idx1, p1))
        raw2 = np.atleast_1d(self._raw(idx2, p2))
        if raw1.shape != raw2.shape:
            raise ValueError('index arrays have different lengths %d and %d' % (len(raw1), len(raw2)))
        for a, b in zip(raw1, raw2):
            ra, rb = self._find(a), self._find(b)
            if ra != rb:
                # keep the smaller raw index as the representative
                self._parent[max(ra, rb)] = min(ra, rb)

    def mark_boundary(self, p, idx):
        """Mark the functions `idx` of patch `p` for elimination."""
        self._check_mutable()
        self._elim[self._raw(idx, p)] = True

    def finalize(self):
        """Compute the global numbering; afterwards the mapper is immutable."""
        self._check_mutable()
        n = len(self._parent)
        roots = np.array([self._find(k) for k in range(n)], dtype=int)
        elim_root = np.zeros(n, dtype=bool)
        elim_root[roots[self._elim]] = True

        is_root = roots == np.arange(n)
        free_roots = np.nonzero(is_root & ~elim_root)[0]
        elim_roots = np.nonzero(is_root & elim_root)[0]
        number = np.empty(n, dtype=int)
        number[free_roots] = np.arange(len(free_roots))
        number[elim_roots] = len(free_roots) + np.arange(len(elim_roots))

        self._dofs = number[roots]
        self._free_size = len(free_roots)
        self._size = len(free_roots) + len(elim_roots)
        return self

    @property
    def size(self):
        """Total number of global dofs, including eliminated ones."""
        self._check_final()
        return self._size

    @property
    def free_size(self):
        self._check_final()
        return self._free_size

    @property
    def boundary_size(self):
        """Number of eliminated dofs."""
        self._check_final()
        return self._size - self._free_size

    def index(self, i, p):
        """Global index of the local function(s) `i` of patch `p`."""
        self._check_final()
        return self._dofs[self._raw(i, p)]

    def is_free_index(self, gl):
        return np.asarray(gl) < self._free_size

    def is_free(self, i, p):
        return self.is_free_index(self.index(i, p))

    def is_boundary(self, i, p):
        return np.logical_not(self.is_free(i, p))

    def global_to_bindex(self, gl):
        return np.asarray(gl) - self._free_size

    def bindex(self, i, p):
        """Position of eliminated function(s) `i` of patch `p` among the
        eliminated dofs."""
        b = self.global_to_bindex(self.index(i, p))
        if np.any(b < 0):
            raise ValueError('dof is not eliminated')
        return b

    def global_dofs(self, p):
        """Global indices of all functions of patch `p`."""
        return self.index(np.arange(self.sizes[p]), p)

    def boundary_members(self):
        """For every eliminated dof, one `(patch, local index)` pair belonging to it."""
        self._check_final()
        out = [None] * self.boundary_size
        for p in range(self.num_patches):
            for i, g in enumerate(self.global_dofs(p)):
                b = g - self._free_size
                if b >= 0 and out[b] is None:
                    out[b] = (p, i)
        return out
