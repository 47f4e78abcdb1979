"""This module implements hierarchical spline spaces and supports the
hierarchical B-spline (HB-spline) and truncated hierarchical B-spline
(THB-spline) bases.

The main class is :class:`HSpace`, which describes a hierarchical spline
space over a dyadically refined mesh and implements the :class:`.Basis`
interface, so that it can be used as the basis of a patch in a
:class:`.MultiBasis`.

A tensor product B-spline basis function is usually referred to by a
multi-index represented as a tuple `(i_1, ..., i_d)`, where `d` is the space
dimension and `i_k` is the index of the univariate B-spline function used in
the `k`-th coordinate direction. Similarly, cells in the underlying tensor
product mesh are indexed by multi-indices `(j_1, .., j_d)`, where `j_k` is the
index of the knot span along the `k`-th axis. Cell `j` on level `lv`
has the children `2*j` and `2*j+1` on level `lv+1` along each axis.

Whenever an ordering of the degrees of freedom in a hierarchical spline space
is required, we use the following **canonical order**: first, all active
basis function on the coarsest level, then all active basis functions on the
next finer level, and so on until the finest level. Within each level, the
functions are ordered lexicographically with respect to their tensor product
multi-indices `(i_1, ..., i_d)`.

The implementation of :class:`HSpace` is loosely based on the approach
described in [GV2018]_.

.. [GV2018] `Garau, Vázquez: "Algorithms for the implementation of adaptive
    isogeometric methods using hierarchical B-splines", 2018.
    <https://doi.org/10.1016/j.apnum.2017.08.006>`_
"""
import warnings
import itertools
import copy

import numpy as np
import scipy.sparse

from . import bspline, utils
from .bases import Basis, Element, check_conforming_trace, map_multi_indices
from .errors import UnsupportedError
from .levels import rescale

def _compute_supported_functions(kv, meshsupp):
    """Compute an array containing for each cell the index of the first and
    one beyond the last function supported in it.
    """
    n = kv.numspans
    sf = np.zeros((n,2), dtype=meshsupp.dtype)
    sf[:,0] = kv.numdofs
    for j in range(meshsupp.shape[0]):
        for k in range(meshsupp[j,0], meshsupp[j,1]):
            sf[k,0] = min(sf[k,0], j)
            sf[k,1] = max(sf[k,1], j)
    sf[:,1] += 1
    return sf

class TPMesh:
    """A tensor product mesh described by a sequence of knot vectors."""
    def __init__(self, kvs):
        self.kvs = tuple(kvs)
        self.dim = len(kvs)
        self.numspans = [kv.numspans for kv in kvs]
        self.numel = np.prod(self.numspans)
        self.numdofs = [kv.numdofs for kv in kvs]
        self.numbf = np.prod(self.numdofs)
        self.meshsupp = tuple(kv.mesh_support_idx_all() for kv in self.kvs)
        self.suppfunc = tuple(_compute_supported_functions(kv,ms) for (kv,ms) in zip(self.kvs, self.meshsupp))

    def __eq__(self, other):
        return self.kvs == other.kvs

    def refine(self):
        return TPMesh([kv.refine() for kv in self.kvs])

    def cells(self):
        """Return a list of all cells in this mesh."""
        return list(itertools.product(
            *(range(n) for n in self.numspans)))

    def cell_extents(self, c):
        """Return the extents (as a tuple of min/max pairs) of the cell `c`."""
        return tuple((kv.mesh[cd], kv.mesh[cd+1]) for (kv,cd) in zip(self.kvs, c))

    def functions(self):
        """Return a list of all basis functions defined on this mesh."""
        return list(itertools.product(
            *(range(n) for n in self.numdofs)))

    def support(self, indices):
        """Return the set of cells where any of the given functions does not vanish."""
        supp = set()
        ms = self.meshsupp
        for jj in indices:
            supp.update(itertools.product(
                *(range(ms[d][j,0], ms[d][j,1]) for (d,j) in enumerate(jj))))
        return supp

    def supported_in(self, cells):
        """Return the set of functions whose support intersects the given cells."""
        funcs = set()
        sf = self.suppfunc
        for kk in cells:
            funcs.update(itertools.product(
                *(range(sf[d][k,0], sf[d][k,1]) for (d,k) in enumerate(kk))))
        return funcs

class HMesh:
    """A hierarchical mesh built on a sequence of uniformly refined tensor product meshes.

    This class is an implementation detail and should not be used in user-facing code.
    """
    def __init__(self, mesh):
        self.dim = mesh.dim
        self.meshes = [mesh]
        self.active = [set(mesh.cells())]
        self.deactivated = [set()]
        self.P = []

    def add_level(self):
        self.meshes.append(self.meshes[-1].refine())
        self.active.append(set())
        self.deactivated.append(set())
        self.P.append(tuple(
            bspline.prolongation(k0, k1).tocsc() for (k0,k1)
            in zip(self.meshes[-2].kvs, self.meshes[-1].kvs)))

    def cell_children(self, lv, cells):
        assert 0 <= lv < len(self.meshes) - 1, 'Invalid level'
        children = []
        for c in cells:
            children.extend(itertools.product(
                *(range(2*ci, 2*(ci + 1)) for ci in c)))
        return children

    def cell_parent(self, lv, cells):
        assert 1 <= lv < len(self.meshes), 'Invalid level'
        return {tuple(ci // 2 for ci in c) for c in cells}

    def ensure_levels(self, L):
        """Make sure that the hierarchical mesh has at least `L` levels."""
        while len(self.meshes) < L:
            self.add_level()

    def refine(self, marked):
        # if necessary, add new fine levels to the data structure
        # NB: if refining on lv 0, we need 2 levels (0 and 1) -- hence the +2
        max_lv = max(lv for (lv,cells) in marked.items() if cells)
        self.ensure_levels(max_lv + 2)

        new_cells = dict()
        for lv in range(len(self.meshes) - 1):
            cells = set(marked.get(lv, []))
            # deactivate refined cells
            self.active[lv] -= cells
            self.deactivated[lv] |= cells
            # add children
            new_cells[lv+1] = self.cell_children(lv, cells)
            self.active[lv+1] |= set(new_cells[lv+1])
        return new_cells


class HDomainTree:
    """Read-only view of the level structure of an :class:`HSpace`, in the
    integer coordinates used for matching and repairing interfaces.

    Cell corners are integers on the grid of some level; the grid of level
    `l+1` has twice the resolution of that of level `l` along every axis.
    """
    def __init__(self, hspace):
        self.hspace = hspace
        self.dim = hspace.dim

    @property
    def index_level(self):
        """The finest level of the underlying hierarchy."""
        return self.hspace.numlevels - 1

    @property
    def max_inserted_level(self):
        """The finest level which contains active cells."""
        return max(lv for lv in range(self.hspace.numlevels) if self.hspace.active_cells(lv))

    def upper_corner(self):
        """Number of cells per axis on :attr:`index_level`."""
        return np.array(self.hspace.mesh(self.index_level).numspans, dtype=np.int64)

    def boxes_on_side(self, side):
        """The active cells touching the given side.

        Returns:
            a triple `(lo, up, levels)`, where `lo` and `up` are integer arrays
            of shape `(n, d)` containing the corners of the cells in the
            coordinates of :attr:`max_inserted_level`, and `levels` contains
            the level of each cell
        """
        hs = self.hspace
        M = self.max_inserted_level
        lo, up, levels = [], [], []
        for lv in range(M + 1):
            last = hs.mesh(lv).numspans[side.axis] - 1
            target = 0 if side.is_low else last
            for c in sorted(hs.active_cells(lv)):
                if c[side.axis] == target:
                    c = np.array(c, dtype=np.int64)
                    lo.append(rescale(c, lv, M))
                    up.append(rescale(c + 1, lv, M))
                    levels.append(lv)
        d = self.dim
        return (np.array(lo, dtype=np.int64).reshape((-1, d)),
                np.array(up, dtype=np.int64).reshape((-1, d)),
                np.array(levels, dtype=np.int64))


class HSpace(Basis):
    """Represents a HB-spline or THB-spline space over an adaptively refined mesh.

    Arguments:
        kvs: a sequence of `d` :class:`.KnotVector` instances, representing
            the tensor product B-spline space on the coarsest level
        truncate (bool): if True, the space represents a THB-spline space,
            otherwise an HB-spline space
        disparity (int): the desired mesh level disparity. This means that an
            active basis function on level `lv` may have interactions at most
            with coarse functions from level `lv - disparity`, but not from
            any coarser levels.

            This disparity is respected when calling :meth:`refine`. Lower
            disparity leads to more gradual changes in the sizes of neighboring
            active cells.

            If no restriction on the number of overlapping mesh levels is
            desired, pass :data:`numpy.inf` (which is the default).
    """
    def __init__(self, kvs, truncate=False, disparity=np.inf):
        tp = TPMesh(kvs)
        hmesh = HMesh(tp)
        assert len(hmesh.meshes) == 1
        self.dim = hmesh.dim
        self.hmesh = hmesh
        self.truncate = bool(truncate)
        self.actfun = [set(hmesh.meshes[0].functions())]
        self.deactfun = [set()]
        self.disparity = disparity
        self._clear_cache()

    def __repr__(self):
        return '<HSpace dim=%d levels=%d dofs=%d%s>' % (self.dim, self.numlevels,
                self.numdofs, ' truncated' if self.truncate else '')

    def _clear_cache(self):
        self._repr_cache = dict()
        self._canonical = None

    def _add_level(self):
        self.hmesh.add_level()
        self.actfun.append(set())
        self.deactfun.append(set())
        assert len(self.actfun) == len(self.deactfun) == len(self.hmesh.meshes)

    def _ensure_levels(self, L):
        """Make sure we have at least `L` levels."""
        while self.numlevels < L:
            self._add_level()

    @property
    def numlevels(self):
        """The number of levels in this hierarchical space."""
        return len(self.hmesh.meshes)

    @property
    def numdofs(self):
        """The total number of active basis functions in this hierarchical space."""
        return sum(self.numactive)

    @property
    def numactive(self):
        """A tuple containing the number of active basis functions per level."""
        return tuple(len(af) for af in self.actfun)

    def mesh(self, lv):
        """Return the underlying :class:`TPMesh` on the given level."""
        return self.hmesh.meshes[lv]

    def knotvectors(self, lv):
        """Return a tuple of :class:`.KnotVector` instances describing the
        tensor product space on level `lv`.
        """
        return self.hmesh.meshes[lv].kvs

    def active_cells(self, lv=None, flat=False):
        """If `lv` is specified, return the set of active cells on that level.
        Otherwise, return a list containing, for each level, the set of active cells.

        If `lv=None` and `flat=True`, return a flat list of `(lv, (j_1, ..., j_d))`
        pairs of all active cells in canonical order.
        """
        if lv is not None:
            return self.hmesh.active[lv]
        else:
            if flat:
                return [(l, ac)
                        for l in range(self.numlevels)
                        for ac in sorted(self.active_cells(l))]
            else:
                return [self.active_cells(lv) for lv in range(self.numlevels)]

    @property
    def total_active_cells(self):
        """The total number of active cells in the hierarchical mesh."""
        return sum(len(ac) for ac in self.active_cells())

    def active_functions(self, lv=None, flat=False):
        """If `lv` is specified, return the set of multi-indices of active
        functions on that level.  Otherwise, return a list containing, for each
        level, the set of active functions.

        If `lv=None` and `flat=True`, return a flat list of `(lv, (i_1, ..., i_d))`
        pairs of all active functions in canonical order.
        """
        if lv is not None:
            return self.actfun[lv]
        else:
            if flat:
                return [(l, af)
                        for l in range(self.numlevels)
                        for af in sorted(self.actfun[l])]
            else:
                return self.actfun

    def cell_extents(self, lv, c):
        """Return the extents (as a tuple of min/max pairs) of the cell `c` on level `lv`."""
        return self.hmesh.meshes[lv].cell_extents(c)

    def ravel_on_level(self, lv, indices):
        # if the indices are given as sets, order them first
        if isinstance(indices, set):
            indices = sorted(indices)
        return (np.ravel_multi_index(np.array(indices).T, self.mesh(lv).numdofs, order='C')
                if len(indices)
                else np.arange(0))

    def ravel_indices(self, indices):
        """Given a list `indices` which contains, per level, a list or set of
        function multi-indices on that level, return a list of arrays with the
        corresponding raveled indices."""
        return tuple(self.ravel_on_level(lv, indices[lv]) for lv in range(self.numlevels))

    def active_indices(self):
        """Return a tuple which contains, per level, the raveled (sequential) indices of
        active basis functions.
        """
        return self.ravel_indices(self.actfun)

    def deactivated_indices(self):
        """Return a tuple which contains, per level, the raveled (sequential) indices of
        deactivated basis functions.
        """
        return self.ravel_indices(self.deactfun)

    def canonical_index(self, lv, jj):
        """Canonical index of the active function with multi-index `jj` on
        level `lv`, or None if it is not active."""
        if self._canonical is None:
            self._canonical = {f: i for (i, f) in enumerate(self.active_functions(flat=True))}
        return self._canonical.get((lv, tuple(int(j) for j in jj)))

    ############################################################################
    # Refinement
    ############################################################################

    def _functions_to_deactivate(self, marked):
        mf = dict()
        # for now assuming marked cells, not functions
        for lv in range(len(self.hmesh.meshes)):
            m = marked.get(lv)
            if not m:
                mf[lv] = set()
            else:
                # can only deactivate active functions
                mfuncs = self.mesh(lv).supported_in(m) & self.actfun[lv]
                # A function is deactivated when all the cells of its level within
                # the support are deactivated.
                mf[lv] = set(f for f in mfuncs
                        if not (self.mesh(lv).support([f]) & self.hmesh.active[lv]))
        return mf

    def cell_support_extension(self, l, cells, k):
        assert 0 <= k <= l, 'Invalid level.'
        aux = cells
        for lv in range(l, k, -1):
            aux = self.hmesh.cell_parent(lv, aux)
        supported_functions = self.hmesh.meshes[k].supported_in(aux)
        return self.hmesh.meshes[k].support(supported_functions)

    def _cell_neighborhood(self, l, cells):
        if l - self.disparity < 0:
            return set()
        else:
            return self.hmesh.active[l-self.disparity] & \
                    set(self.cell_support_extension(l, cells, l-self.disparity))

    def _mark_recursive(self, l, marked):
        neighbors = self._cell_neighborhood(l, marked.get(l, set()))
        if neighbors:
            marked[l-self.disparity] = marked.get(l-self.disparity, set()) | neighbors
            self._mark_recursive(l-self.disparity, marked)

    def refine(self, marked):
        """Refine the given cells; `marked` is a dictionary which has the
        levels as indices and the list of marked cells on that level as values.

        The refinement procedure preserves the mesh level disparity, following
        the method described in [Bracco, Giannelli, Vázquez, 2018].

        Returns:
            the actually refined cells in the same format as `marked`; if
            disparity is less than infinity, this is a superset of the
            input cells
        """
        marked = {lv: set(cells) for (lv, cells) in marked.items() if cells}
        if not marked:
            return marked
        max_lv = max(marked.keys())
        self._ensure_levels(max_lv + 2)

        if self.disparity < np.inf:
            for l in range(self.numlevels):
                self._mark_recursive(l, marked)

        new_cells = self.hmesh.refine(marked)
        mf = self._functions_to_deactivate(marked)

        for lv in range(len(self.hmesh.meshes) - 1):
            mfuncs = mf[lv]
            # deactivate the marked functions
            self.actfun[lv] -= mfuncs
            self.deactfun[lv] |= mfuncs
            # find candidate functions on fine level to be activated
            candidate_funcs = self.mesh(lv+1).supported_in(new_cells[lv+1])
            # ignore functions that are already active
            candidate_funcs = candidate_funcs - self.actfun[lv+1]

            # set of active or deactivated cells on finer level
            fine_cells = self.hmesh.active[lv+1] | self.hmesh.deactivated[lv+1]
            # keep only those functions whose support is contained in those fine cells
            msh = self.mesh(lv + 1)
            newfuncs = set(f for f in candidate_funcs if
                msh.support([f]).issubset(fine_cells))
            # activate them on the finer level
            self.actfun[lv+1] |= newfuncs

        self._clear_cache()
        return marked       # return the actual refined cells

    def refine_elements(self, boxes):
        """Refine the mesh such that the regions given by `boxes` are covered
        by cells of at least the requested level.

        `boxes` is a flat sequence of boxes, each of the form
        `[level, lo_1, ..., lo_d, up_1, ..., up_d]`, where the corners are
        given in cell coordinates of that level.

        Returns:
            True if any cell was refined
        """
        d = self.dim
        boxes = np.asarray(boxes, dtype=np.int64).reshape((-1, 1 + 2*d))
        changed = False
        for box in boxes:
            L, lo, up = int(box[0]), box[1:1+d], box[1+d:]
            for lv in range(L):
                if lv >= self.numlevels:
                    break
                # cells on level lv which overlap the box; round outward
                lo_lv = rescale(lo, L, lv)
                up_lv = (up + (1 << (L - lv)) - 1) >> (L - lv)
                marked = [c for c in self.active_cells(lv)
                          if all(lo_lv[k] <= c[k] < up_lv[k] for k in range(d))]
                if marked:
                    self.refine({lv: marked})
                    changed = True
        return changed

    def refine_region(self, lv, region_function):
        """Refine all active cells on level `lv` whose cell center satisfies `region_function`.

        `region_function` should be a function of `dim` scalar arguments (e.g., `(x,y)`)
        which returns True if the point is within the refinement region.
        """
        def cell_center(c):
            return tuple(0.5*(lo+hi) for (lo,hi) in self.cell_extents(lv, c))
        return self.refine({
            lv: tuple(c for c in self.active_cells(lv) if region_function(*cell_center(c)))
        })

    def uniform_refine(self):
        """Refine every active cell once."""
        self.refine({lv: set(cells) for (lv, cells) in enumerate(self.active_cells())})

    def copy(self):
        """Generate a copy of self"""
        return copy.deepcopy(self)

    ############################################################################
    # Representation and evaluation
    ############################################################################

    def represent_fine(self, lv=None, truncate=None):
        """Compute a matrix which represents HB- or THB-spline basis functions in terms of
        their coefficients in the tensor product spline space of level `lv`.

        Active functions up to level `lv` are represented; the deactivated
        functions of level `lv` are appended as the last columns. If `lv` is
        not specified, the finest level is used.

        If `truncate` is True, the representation of the THB-spline (truncated) basis
        functions is computed instead of that of the HB-splines.
        If `truncate` is None (default), the attribute :attr:`HSpace.truncate` is used.
        """
        if lv is None:
            lv = self.numlevels - 1
        assert 0 <= lv < self.numlevels, "Invalid level."
        if truncate is None:
            truncate = self.truncate
        act_indices = list(self.active_indices()[:lv+1])
        deact_indices = self.deactivated_indices()[lv]
        # generate list of raveled active indices of virtual level lv
        act_indices[lv] = np.concatenate((act_indices[lv],deact_indices)).astype(int)

        # Intermediate matrix format; if truncating, we need a format which
        # allows efficient changing of the sparsity structure due to setting
        # some rows to 0.
        fmt = 'lil' if truncate else 'csr'

        blocks = []
        for k in reversed(range(lv+1)):
            if k == lv:
                P = scipy.sparse.eye(self.mesh(k).numbf, format='csr')
            else:
                Pj = utils.multi_kron_sparse(self.hmesh.P[k], format=fmt)
                if truncate:
                    Pj[act_indices[k+1], :] = 0
                P = P.dot(Pj.tocsr())
            blocks.append(P[:, act_indices[k]])

        blocks.reverse()
        return scipy.sparse.bmat([blocks], format='csr')

    def _level_representation(self, lv):
        """Representation of the active functions of levels `0, ..., lv` on
        level `lv`, as a CSR matrix with columns in canonical order."""
        R = self._repr_cache.get(lv)
        if R is None:
            n = sum(self.numactive[:lv+1])
            R = self.represent_fine(lv)[:, :n].tocsr()
            self._repr_cache[lv] = R
        return R

    def _spans(self, lv, cell):
        return [kv.mesh_span_indices()[c] for (kv, c) in zip(self.knotvectors(lv), cell)]

    def _cell_element(self, lv, cell):
        ext = self.cell_extents(lv, cell)
        return Element(np.array([e[0] for e in ext]), np.array([e[1] for e in ext]), lv, tuple(cell))

    def _local_representation(self, element):
        lv = element.level
        kvs = self.knotvectors(lv)
        spans = self._spans(lv, element.cell)
        ranges = [np.arange(s - kv.p, s + 1) for (s, kv) in zip(spans, kvs)]
        rows = np.ravel_multi_index(tuple(utils.cartesian_product(ranges).T),
                tuple(kv.numdofs for kv in kvs))
        R = self._level_representation(lv)[rows]
        actives = np.unique(R.nonzero()[1])
        return spans, actives, R[:, actives].toarray()

    def support(self):
        return tuple(kv.support() for kv in self.knotvectors(0))

    def degree(self, k):
        return self.knotvectors(0)[k].p

    @property
    def size(self):
        return self.numdofs

    def elements(self):
        for (lv, c) in self.active_cells(flat=True):
            yield self._cell_element(lv, c)

    def locate(self, point):
        x = np.ravel(point)
        for lv in range(self.numlevels):
            cell = []
            for kv, xk in zip(self.knotvectors(lv), x):
                c = np.searchsorted(kv.mesh, xk, side='right') - 1
                cell.append(int(np.clip(c, 0, kv.numspans - 1)))
            cell = tuple(cell)
            if cell in self.hmesh.active[lv]:
                return self._cell_element(lv, cell)
        raise ValueError('point %s is not contained in any active cell' % (x,))

    def active(self, point, element=None):
        if element is None:
            element = self.locate(point)
        return self._local_representation(element)[1]

    def eval_all_ders(self, points, n, element=None):
        points = utils.as_points(points, self.dim)
        if element is None:
            element = self.locate(points[0])
        spans, actives, R = self._local_representation(element)
        _, ders = bspline.tp_active_ders(self.knotvectors(element.level), spans, points, n)
        # combine the tensor product functions into the hierarchical ones
        return [np.tensordot(R.T, D, axes=(1, 0)) for D in ders]

    ############################################################################
    # Interfaces and boundaries
    ############################################################################

    def hierarchical_tree(self):
        return HDomainTree(self)

    def _boundary_functions(self, side):
        """Active functions on the given side as `(lv, multi-index)` pairs in
        canonical order."""
        out = []
        for lv in range(self.numlevels):
            shape = self.mesh(lv).numdofs
            target = 0 if side.is_low else shape[side.axis] - 1
            out.extend((lv, f) for f in sorted(self.actfun[lv]) if f[side.axis] == target)
        return out

    def boundary(self, side):
        return np.array([self.canonical_index(lv, f) for (lv, f) in self._boundary_functions(side)],
                dtype=int)

    def boundary_anchors(self, side):
        funcs = self._boundary_functions(side)
        if not funcs:
            return np.zeros((0, self.dim))
        grev = [[kv.greville() for kv in self.knotvectors(lv)] for lv in range(self.numlevels)]
        return np.array([[grev[lv][k][f[k]] for k in range(self.dim)] for (lv, f) in funcs])

    def match_with(self, bi, other):
        """Pair the active functions on the first side of `bi` with the active
        functions of `other` on the second side, level by level.

        Functions without an active partner on the same level are left
        unmatched and a :class:`RuntimeWarning` is issued.
        """
        if not isinstance(other, HSpace):
            raise UnsupportedError('cannot match %s with %s' % (type(self).__name__, type(other).__name__))
        check_conforming_trace(self.knotvectors(0), other.knotvectors(0), bi)
        idx1, idx2 = [], []
        unmatched = 0
        for lv in range(self.numlevels):
            funcs = [f for (l, f) in self._boundary_functions(bi.first.side) if l == lv]
            if not funcs:
                continue
            if lv >= other.numlevels:
                unmatched += len(funcs)
                continue
            multi2 = map_multi_indices(np.array(funcs, dtype=int), bi, other.mesh(lv).numdofs)
            for f, g in zip(funcs, multi2):
                j = other.canonical_index(lv, g)
                if j is None:
                    unmatched += 1
                else:
                    idx1.append(self.canonical_index(lv, f))
                    idx2.append(j)
        if unmatched:
            warnings.warn('%d interface functions of patch %d could not be matched across %s; '
                    'the interface is not conforming' % (unmatched, bi.first.patch, bi),
                    RuntimeWarning)
        return np.array(idx1, dtype=int), np.array(idx2, dtype=int)
