"""Common interface of the spline bases used on the patches of a multipatch
domain, and its tensor product B-spline implementation.

Every basis numbers its functions from 0 to :attr:`Basis.size` - 1 and
is made up of elements (the cells of its mesh). The hierarchical basis in
:mod:`mpiga.hierarchical` implements the same interface and additionally
exposes its level structure through :meth:`Basis.hierarchical_tree`.
"""
import abc
import copy
import itertools
from collections import namedtuple

import numpy as np
import scipy.sparse

from . import bspline, utils
from .errors import UnsupportedError, DimensionError


class Element(namedtuple('Element', ['lower', 'upper', 'level', 'cell'])):
    """A mesh cell `[lower, upper]` in the parameter domain, together with its
    refinement level and its integer index on that level."""
    __slots__ = ()


class Basis(abc.ABC):
    """Abstract base class for the basis of a single patch."""

    dim = None

    @abc.abstractmethod
    def degree(self, k):
        """Polynomial degree along axis `k`."""

    def max_degree(self):
        return max(self.degree(k) for k in range(self.dim))

    def min_degree(self):
        return min(self.degree(k) for k in range(self.dim))

    @property
    @abc.abstractmethod
    def size(self):
        """Number of basis functions."""

    @abc.abstractmethod
    def support(self):
        """Parameter domain as a tuple of `(lower, upper)` pairs."""

    @abc.abstractmethod
    def elements(self):
        """Iterate over all elements. Each call starts a new iteration."""

    def elements_on_side(self, side):
        """Iterate over the elements which touch the given side."""
        end = self.support()[side.axis][side.param]
        for el in self.elements():
            bd = el.upper if side.param else el.lower
            if np.isclose(bd[side.axis], end):
                yield el

    @abc.abstractmethod
    def locate(self, point):
        """Return the element which contains `point`."""

    @abc.abstractmethod
    def active(self, point, element=None):
        """Indices of the functions which may be nonzero on the element
        containing `point`."""

    @abc.abstractmethod
    def eval_all_ders(self, points, n, element=None):
        """Evaluate the active functions of one element and their derivatives
        up to order `n` at the points `(nq, d)`.

        Returns:
            a list of `n+1` arrays of shapes `(N, nq)`, `(N, nq, d)` and
            `(N, nq, d, d)`, where `N` is the number of active functions
            in the order returned by :meth:`active`
        """

    @abc.abstractmethod
    def boundary(self, side):
        """Indices of the functions which do not vanish on the given side."""

    @abc.abstractmethod
    def boundary_anchors(self, side):
        """Greville points of the functions returned by :meth:`boundary`,
        in the same order; shape `(N_b, d)`."""

    def refine_elements(self, boxes):
        raise UnsupportedError('%s does not support local refinement' % type(self).__name__)

    @abc.abstractmethod
    def uniform_refine(self):
        """Refine every element once in all directions."""

    @abc.abstractmethod
    def match_with(self, bi, other):
        """Return index arrays `(idx1, idx2)` of functions of this basis and of
        `other` which coincide across the interface `bi`."""

    def hierarchical_tree(self):
        """The level structure of a hierarchical basis, or None."""
        return None

    def copy(self):
        return copy.deepcopy(self)

    def eval_matrix(self, points):
        """Sparse matrix of shape `(npoints, size)` with the values of all
        functions at the given points."""
        points = utils.as_points(points, self.dim)
        I, J, V = [], [], []
        for i, x in enumerate(points):
            el = self.locate(x)
            act = self.active(x, el)
            vals = self.eval_all_ders(x[None, :], 0, el)[0][:, 0]
            I.append(np.full(len(act), i))
            J.append(act)
            V.append(vals)
        return scipy.sparse.coo_matrix(
                (np.concatenate(V), (np.concatenate(I), np.concatenate(J))),
                shape=(points.shape[0], self.size)).tocsr()

################################################################################
# Helpers for matching tensor product indices across interfaces
################################################################################

def _normalized_knots(kv, reverse=False):
    a, b = kv.support()
    t = (kv.kv - a) / (b - a)
    return 1.0 - t[::-1] if reverse else t

def check_conforming_trace(kvs1, kvs2, bi):
    """Raise :class:`.UnsupportedError` unless the tangential knot vectors of
    both sides of `bi` coincide (after orientation and rescaling)."""
    if len(kvs1) != len(kvs2):
        raise DimensionError('bases have dimensions %d and %d' % (len(kvs1), len(kvs2)))
    for k in bi.tangential_axes():
        j = bi.dir_map[k]
        kv1, kv2 = kvs1[k], kvs2[j]
        t1 = _normalized_knots(kv1)
        t2 = _normalized_knots(kv2, reverse=not bi.dir_orientation[k])
        if kv1.p != kv2.p or t1.shape != t2.shape or not np.allclose(t1, t2):
            raise UnsupportedError('non-conforming interface %s: knot vectors %s and %s differ'
                    % (bi, kv1, kv2))

def side_multi_indices(shape, side):
    """Multi-indices `(N, d)` of the tensor product functions on a side, in
    lexicographic order."""
    axdofs = [np.arange(n) for n in shape]
    axdofs[side.axis] = np.array([0 if side.is_low else shape[side.axis] - 1])
    return np.array(list(itertools.product(*axdofs)), dtype=int).reshape((-1, len(shape)))

def map_multi_indices(multi, bi, shape2):
    """Map tensor product multi-indices on the first side of `bi` to the
    corresponding multi-indices on the second side (over a tensor product
    space of size `shape2`)."""
    out = np.empty_like(multi)
    for k in range(bi.dim):
        j = bi.dir_map[k]
        out[:, j] = multi[:, k] if bi.dir_orientation[k] else shape2[j] - 1 - multi[:, k]
    s2 = bi.second.side
    out[:, s2.axis] = 0 if s2.is_low else shape2[s2.axis] - 1
    return out

def boundary_dofs(kvs, side):
    """Raveled indices of the dofs which lie on the given side of the tensor
    product basis `kvs`."""
    shape = tuple(kv.numdofs for kv in kvs)
    multi = side_multi_indices(shape, side)
    return np.ravel_multi_index(tuple(multi.T), shape)

################################################################################

class TensorBSplineBasis(Basis):
    """Tensor product B-spline basis over the knot vectors `kvs`.

    Functions are numbered by raveling their multi-indices in C order.
    """
    def __init__(self, kvs):
        if isinstance(kvs, bspline.KnotVector):
            kvs = (kvs,)
        self.kvs = tuple(kvs)
        self.dim = len(self.kvs)

    def __repr__(self):
        return 'TensorBSplineBasis(%s)' % (', '.join(str(kv) for kv in self.kvs))

    def degree(self, k):
        return self.kvs[k].p

    @property
    def shape(self):
        return tuple(kv.numdofs for kv in self.kvs)

    @property
    def size(self):
        return bspline.numdofs(self.kvs)

    def support(self):
        return tuple(kv.support() for kv in self.kvs)

    def _spans(self, cell):
        return [kv.mesh_span_indices()[c] for (kv, c) in zip(self.kvs, cell)]

    def elements(self):
        meshes = [kv.mesh for kv in self.kvs]
        for cell in itertools.product(*(range(kv.numspans) for kv in self.kvs)):
            lower = np.array([m[c] for (m, c) in zip(meshes, cell)])
            upper = np.array([m[c+1] for (m, c) in zip(meshes, cell)])
            yield Element(lower, upper, 0, cell)

    def locate(self, point):
        cell = []
        for kv, x in zip(self.kvs, np.ravel(point)):
            c = np.searchsorted(kv.mesh, x, side='right') - 1
            cell.append(int(np.clip(c, 0, kv.numspans - 1)))
        meshes = [kv.mesh for kv in self.kvs]
        return Element(np.array([m[c] for (m, c) in zip(meshes, cell)]),
                       np.array([m[c+1] for (m, c) in zip(meshes, cell)]), 0, tuple(cell))

    def active(self, point, element=None):
        if element is None:
            element = self.locate(point)
        spans = self._spans(element.cell)
        ranges = [np.arange(s - kv.p, s + 1) for (s, kv) in zip(spans, self.kvs)]
        multi = utils.cartesian_product(ranges)
        return np.ravel_multi_index(tuple(multi.T), self.shape)

    def eval_all_ders(self, points, n, element=None):
        points = utils.as_points(points, self.dim)
        if element is None:
            element = self.locate(points[0])
        _, ders = bspline.tp_active_ders(self.kvs, self._spans(element.cell), points, n)
        return ders

    def boundary(self, side):
        return boundary_dofs(self.kvs, side)

    def boundary_anchors(self, side):
        multi = side_multi_indices(self.shape, side)
        grev = [kv.greville() for kv in self.kvs]
        return np.stack([grev[k][multi[:, k]] for k in range(self.dim)], axis=1)

    def uniform_refine(self):
        self.kvs = tuple(kv.refine() for kv in self.kvs)

    def match_with(self, bi, other):
        if not isinstance(other, TensorBSplineBasis):
            raise UnsupportedError('cannot match %s with %s' % (type(self).__name__, type(other).__name__))
        check_conforming_trace(self.kvs, other.kvs, bi)
        multi1 = side_multi_indices(self.shape, bi.first.side)
        multi2 = map_multi_indices(multi1, bi, other.shape)
        idx1 = np.ravel_multi_index(tuple(multi1.T), self.shape)
        idx2 = np.ravel_multi_index(tuple(multi2.T), other.shape)
        return idx1, idx2

    def copy(self):
        return TensorBSplineBasis([kv.copy() for kv in self.kvs])
