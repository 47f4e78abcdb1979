"""Global sparse linear system assembled from element contributions."""
import numpy as np
import scipy.sparse


class SparseSystem:
    """Accumulates element matrices and vectors into a global sparse system
    over the free dofs of one or several :class:`.DofMapper` instances.

    Args:
        mappers: a :class:`.DofMapper` or a list of them, one per unknown
        row_blocks, col_blocks: indices into `mappers` of the unknowns
            forming the block rows and block columns; default is all of them

    The matrix is collected as COO triplets; duplicates are summed when
    :meth:`matrix` is called.
    """
    def __init__(self, mappers, row_blocks=None, col_blocks=None):
        if not isinstance(mappers, (list, tuple)):
            mappers = [mappers]
        self.mappers = list(mappers)
        self.row_blocks = list(range(len(self.mappers))) if row_blocks is None else list(row_blocks)
        self.col_blocks = list(range(len(self.mappers))) if col_blocks is None else list(col_blocks)
        for m in self.mappers:
            if not m.is_finalized:
                raise RuntimeError('SparseSystem requires finalized DofMappers')
        rs = [self.mappers[b].free_size for b in self.row_blocks]
        cs = [self.mappers[b].free_size for b in self.col_blocks]
        self._row_ofs = np.concatenate(([0], np.cumsum(rs))).astype(int)
        self._col_ofs = np.concatenate(([0], np.cumsum(cs))).astype(int)
        self.shape = (int(self._row_ofs[-1]), int(self._col_ofs[-1]))
        self.set_zero()

    def __repr__(self):
        return '<SparseSystem %dx%d, %d entries>' % (self.shape + (sum(len(v) for v in self._V),))

    def row_mapper(self, r=0):
        return self.mappers[self.row_blocks[r]]

    def col_mapper(self, c=0):
        return self.mappers[self.col_blocks[c]]

    def set_zero(self):
        self._I, self._J, self._V = [], [], []
        self._rhs = np.zeros(self.shape[0])
        self._matrix = None

    def reserve(self, nnz_per_row):
        """Record the expected number of nonzeros per row; the COO storage
        grows as needed, so this only serves as a hint."""
        self.nnz_per_row = int(nnz_per_row)

    def map_col_indices(self, actives, patch, c=0):
        """Global column-mapper indices of the local functions `actives` of `patch`."""
        return self.col_mapper(c).index(actives, patch)

    def map_row_indices(self, actives, patch, r=0):
        return self.row_mapper(r).index(actives, patch)

    def push(self, local_mat, local_rhs, actives, eliminated, r=0, c=0):
        """Scatter an element matrix and vector.

        Args:
            local_mat: `(N, N)` element matrix
            local_rhs: `(N,)` element vector
            actives: global mapper indices of the `N` element functions, as
                returned by :meth:`map_col_indices`
            eliminated: values of the eliminated dofs of the column mapper
            r, c: block row and column

        Entries in rows of eliminated dofs are dropped. Entries in columns of
        eliminated dofs are multiplied by the prescribed values and moved to
        the right-hand side.
        """
        actives = np.asarray(actives, dtype=int)
        rmap, cmap = self.row_mapper(r), self.col_mapper(c)
        free_r = rmap.is_free_index(actives)
        free_c = cmap.is_free_index(actives)
        rows = actives[free_r] + self._row_ofs[r]
        cols = actives[free_c] + self._col_ofs[c]

        M = np.asarray(local_mat)
        M_ff = M[np.ix_(free_r, free_c)]
        I, J = np.meshgrid(rows, cols, indexing='ij')
        self._I.append(I.ravel())
        self._J.append(J.ravel())
        self._V.append(M_ff.ravel())

        if local_rhs is not None:
            np.add.at(self._rhs, rows, np.asarray(local_rhs)[free_r])

        elim_c = np.logical_not(free_c)
        if np.any(elim_c):
            b = cmap.global_to_bindex(actives[elim_c])
            vals = np.asarray(eliminated).reshape(-1)[b]
            np.add.at(self._rhs, rows, -M[np.ix_(free_r, elim_c)].dot(vals))
        self._matrix = None

    def push_rhs(self, local_rhs, actives, r=0):
        """Scatter an element vector only."""
        actives = np.asarray(actives, dtype=int)
        free_r = self.row_mapper(r).is_free_index(actives)
        np.add.at(self._rhs, actives[free_r] + self._row_ofs[r], np.asarray(local_rhs)[free_r])

    def matrix(self):
        """The assembled matrix in CSR format."""
        if self._matrix is None:
            if self._V:
                I, J, V = (np.concatenate(x) for x in (self._I, self._J, self._V))
            else:
                I = J = np.zeros(0, dtype=int)
                V = np.zeros(0)
            A = scipy.sparse.coo_matrix((V, (I, J)), shape=self.shape).tocsr()
            A.sum_duplicates()
            self._matrix = A
        return self._matrix

    def rhs(self):
        return self._rhs
