# -*- coding: utf-8 -*-
"""Functions and classes for B-spline basis functions.

Tensor product B-spline bases are represented as tuples of univariate
:class:`KnotVector` instances. Throughout this package, axis `k` of such a
tuple corresponds to coordinate `k` of a parameter point, and tensor product
indices are raveled in C order (the last axis runs fastest).
"""

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from . import utils


class KnotVector:
    """Represents an open B-spline knot vector together with a spline degree.

    Args:
        knots (ndarray): the 1D knot vector. Should be an open knot vector,
            i.e., the first and last knot should be repeated `p+1` times.
            Interior knots may be single or repeated up to `p` times.
        p (int): the spline degree.

    A more convenient way to create knot vectors is the :func:`make_knots` function.

    Attributes:
        kv (ndarray): vector of knots
        p (int): spline degree
    """

    def __init__(self, knots, p):
        """Construct an open B-spline knot vector with given `knots` and degree `p`."""
        self.kv = np.asarray(knots, dtype=float)
        # sanity check: knots should be monotonically increasing
        assert np.all(self.kv[1:] - self.kv[:-1] >= 0), 'knots should be increasing'
        self.p = p
        self._mesh = None    # knots with duplicates removed (on demand)
        self._knots_to_mesh = None   # knot indices to mesh indices (on demand)

    def __str__(self):
        return '<KnotVector p=%d sz=%d>' % (self.p, self.kv.size)

    def __repr__(self):
        return 'KnotVector(%s, %s)' % (repr(self.kv), repr(self.p))

    def __eq__(self, other):
        if self.p == other.p and len(self.kv) == len(other.kv):
            if np.allclose(self.kv, other.kv, atol=1e-8, rtol=1e-8):
                return True
        return False

    @property
    def numknots(self):
        return self.kv.size

    @property
    def numdofs(self):
        """Number of basis functions in a B-spline basis defined over this knot vector"""
        return self.kv.size - self.p - 1

    @property
    def numspans(self):
        """Number of nontrivial intervals in the knot vector"""
        return self.mesh.size - 1

    def copy(self):
        """Return a copy of this knot vector."""
        return KnotVector(self.kv.copy(), self.p)

    def support(self, j=None):
        """Support of the knot vector or, if `j` is passed, of the j-th B-spline"""
        if j is None:
            return (self.kv[0], self.kv[-1])
        else:
            return (self.kv[j], self.kv[j+self.p+1])

    def _ensure_mesh(self):
        """Make sure that the _mesh and _knots_to_mesh arrays are set up"""
        if self._knots_to_mesh is None:
            self._mesh, self._knots_to_mesh = np.unique(self.kv, return_inverse=True)

    @property
    def mesh(self):
        """Return the mesh, i.e., the vector of unique knots in the knot vector."""
        self._ensure_mesh()
        return self._mesh

    def mesh_support_idx_all(self):
        """Compute an integer array of size `N × 2`, where N = self.numdofs, which
        contains for each B-spline the first and last mesh index of its support.
        """
        self._ensure_mesh()
        n = self.numdofs
        startend = np.stack((np.arange(0,n), np.arange(self.p+1, n+self.p+1)), axis=1)
        return self._knots_to_mesh[startend]

    def mesh_span_indices(self):
        """Return an array of indices i such that kv[i] != kv[i+1], i.e., the indices
        of the nonempty spans. Return value has length self.numspans.
        """
        self._ensure_mesh()
        k2m = self._knots_to_mesh
        return np.where(k2m[1:] != k2m[:-1])[0]

    def findspan(self, u):
        """Returns an index i such that
         kv[i] <= u < kv[i+1]     (except for the boundary, where u <= kv[m-p] is allowed)
         and p <= i < len(kv) - 1 - p"""
        if u >= self.kv[-self.p-1]:
            return self.kv.size - self.p - 2  # last interval
        else:
            return self.kv.searchsorted(u, side='right') - 1

    def first_active(self, k):
        """Index of first active basis function in interval (kv[k], kv[k+1])"""
        return k - self.p

    def first_active_at(self, u):
        """Index of first active basis function in the interval which contains `u`."""
        return self.first_active(self.findspan(u))

    def greville(self):
        """Compute Gréville abscissae for this knot vector"""
        p = self.p
        if p == 0:
            return (self.kv[1:] + self.kv[:-1]) / 2     # cell middle points
        else:
            # running averages over p knots
            g = (np.convolve(self.kv, np.ones(p) / p))[p:-p]
            # due to rounding errors, some points may not be contained in the
            # support interval; clamp them manually to avoid problems later on
            return np.clip(g, self.kv[0], self.kv[-1])

    def refine(self, new_knots=None, mult=1):
        """Return the refinement of this knot vector by inserting `new_knots`,
        or performing uniform refinement if none are given."""
        if new_knots is None:
            mesh = self.mesh
            new_knots = (mesh[1:] + mesh[:-1]) / 2
            if mult>1:
                new_knots = np.hstack(mult*[new_knots,])
        kvnew = np.sort(np.concatenate((self.kv, new_knots)))
        return KnotVector(kvnew, self.p)


def make_knots(p, a, b, n, mult=1):
    """Create an open knot vector of degree `p` over an interval `(a,b)` with `n` knot spans.

    This automatically repeats the first and last knots `p+1` times in order
    to create an open knot vector. Interior knots are single by default, i.e., have
    maximum continuity.

    Args:
        p (int): the spline degree
        a (float): the starting point of the interval
        b (float): the end point of the interval
        n (int): the number of knot spans to divide the interval into
        mult (int): the multiplicity of interior knots

    Returns:
        :class:`KnotVector`: the new knot vector
    """
    kv = np.concatenate(
            (np.repeat(a, p+1),
             np.repeat(np.linspace(a, b, n+1)[1:-1], mult),
             np.repeat(b, p+1)))
    return KnotVector(kv, p)

def numdofs(kvs):
    """Convenience function which returns the number of dofs in a single knot vector
    or in a tensor product space represented by a tuple of knot vectors.
    """
    if isinstance(kvs, KnotVector):
        return kvs.numdofs
    else:
        return int(np.prod([kv.numdofs for kv in kvs]))

################################################################################

def _bspline_active_deriv_single(knotvec, u, numderiv, span):
    """Evaluate all active B-spline basis functions and their derivatives
    up to `numderiv` at a single point `u`"""
    kv, p = knotvec.kv, knotvec.p
    NDU   = np.empty((p+1, p+1))
    left  = np.empty(p)
    right = np.empty(p)
    result = np.zeros((numderiv+1, p+1))

    NDU[0,0] = 1.0

    for j in range(1, p+1):
        # Compute knot splits
        left[j-1]  = u - kv[span+1-j]
        right[j-1] = kv[span+j] - u
        saved = 0.0

        for r in range(j):     # For all but the last basis functions of degree j (ndu row)
            # Strictly lower triangular part: Knot differences of distance j
            NDU[j, r] = right[r] + left[j-r-1]
            temp = NDU[r, j-1] / NDU[j, r]
            # Upper triangular part: Basis functions of degree j
            NDU[r, j] = saved + right[r] * temp  # r-th function value of degree j
            saved = left[j-r-1] * temp

        # Diagonal: j-th (last) function value of degree j
        NDU[j, j] = saved

    # copy function values into result array
    result[0, :] = NDU[:, -1]

    a1 = np.empty(p+1)
    a2 = np.empty(p+1)

    # derivatives of order > p vanish and are left at zero
    for r in range(p+1):    # loop over basis functions
        a1[0] = 1.0

        fac = p        # fac = fac(p) / fac(p-k)

        # Compute the k-th derivative of the r-th basis function
        for k in range(1, min(numderiv, p)+1):
            rk = r - k
            pk = p - k
            d = 0.0

            if r >= k:
                a2[0] = a1[0] / NDU[pk+1, rk]
                d = a2[0] * NDU[rk, pk]

            j1 = 1 if rk >= -1  else -rk
            j2 = k-1 if r-1 <= pk else p - r

            for j in range(j1, j2+1):
                a2[j] = (a1[j] - a1[j-1]) / NDU[pk+1, rk+j]
                d += a2[j] * NDU[rk+j, pk]

            if r <= pk:
                a2[k] = -a1[k-1] / NDU[pk+1, r]
                d += a2[k] * NDU[r, pk]

            result[k, r] = d * fac
            fac *= pk          # update fac = fac(p) / fac(p-k) for next k

            # swap rows a1 and a2
            (a1,a2) = (a2,a1)

    return result

def active_deriv(knotvec, u, numderiv, span=None):
    """Evaluate all active B-spline basis functions and their derivatives
    up to `numderiv` at the points `u`.

    If `span` is given, the polynomial pieces of that knot span are used for
    all points; otherwise the span containing each point is determined by
    :meth:`KnotVector.findspan`.

    Returns an array with shape (numderiv+1, p+1) if `u` is scalar or
    an array with shape (numderiv+1, p+1, u.size) otherwise.
    """
    if np.isscalar(u):
        if span is None:
            span = knotvec.findspan(u)
        return _bspline_active_deriv_single(knotvec, u, numderiv, span)
    else:
        u = np.asarray(u, dtype=float).ravel()
        result = np.empty((numderiv+1, knotvec.p+1, u.size))
        for i in range(u.size):
            sp = knotvec.findspan(u[i]) if span is None else span
            result[:,:,i] = _bspline_active_deriv_single(knotvec, u[i], numderiv, sp)
        return result

################################################################################

def collocation_derivs(kv, nodes, derivs=1):
    """Compute collocation matrix and derivative collocation matrices for B-spline
    basis at the given interpolation nodes.

    Returns a list of derivs+1 sparse CSR matrices with shape (nodes.size, kv.numdofs)."""
    nodes = np.asarray(nodes, dtype=float).ravel()
    m, n, p = nodes.size, kv.numdofs, kv.p
    values = active_deriv(kv, nodes, derivs)        # (derivs+1) x (p+1) x m
    indices = np.array([kv.first_active_at(u) for u in nodes], dtype=int)

    # compute I, J indices:
    # I: p + 1 entries per row
    I = np.repeat(np.arange(m), p + 1)
    # J: arange(indices[k], indices[k] + p + 1) per row
    J = (indices[:, None] + np.arange(p + 1)[None, :]).ravel()

    return [scipy.sparse.coo_matrix((values[d].T.ravel(), (I,J)), shape=(m,n)).tocsr()
            for d in range(derivs + 1)]

def collocation(kv, nodes):
    """Compute collocation matrix for B-spline basis at the given interpolation nodes.

    Args:
        kv (:class:`KnotVector`): the B-spline knot vector
        nodes (array): array of nodes at which to evaluate the B-splines

    Returns:
        A Scipy CSR matrix with shape `(len(nodes), kv.numdofs)` whose entry at
        `(i,j)` is the value of the `j`-th B-spline evaluated at `nodes[i]`.
    """
    return collocation_derivs(kv, nodes, derivs=0)[0]

def prolongation(kv1, kv2):
    """Compute prolongation matrix between B-spline bases.

    Given two B-spline bases, where the first spans a subspace of the second
    one, compute the matrix which maps spline coefficients from the first
    basis to the coefficients of the same function in the second basis.

    Args:
        kv1 (:class:`KnotVector`): source B-spline basis knot vector
        kv2 (:class:`KnotVector`): target B-spline basis knot vector

    Returns:
        csr_matrix: sparse matrix which prolongs coefficients from `kv1` to `kv2`
    """
    g = kv2.greville()
    C1 = collocation(kv1, g).toarray()
    C2 = collocation(kv2, g).tocsc()
    P = scipy.sparse.linalg.spsolve(C2, C1)
    P = np.asarray(P).reshape((kv2.numdofs, kv1.numdofs))
    # prune matrix
    P[np.abs(P) < 1e-15] = 0.0
    return scipy.sparse.csr_matrix(P)

################################################################################

def _derivative_orders(dim, n):
    """Multi-indices for the values, gradients and Hessians up to order `n`."""
    orders = [[(0,) * dim]]
    if n >= 1:
        orders.append([tuple(int(k == i) for k in range(dim)) for i in range(dim)])
    if n >= 2:
        orders.append([tuple(int(k == i) + int(k == j) for k in range(dim))
                       for i in range(dim) for j in range(dim)])
    if n > 2:
        raise ValueError('derivatives of order > 2 are not supported')
    return orders

def tp_active_ders(kvs, spans, points, n=1):
    """Evaluate the tensor product B-splines which are active on a single
    cell together with their derivatives up to order `n` (at most 2).

    Args:
        kvs: tuple of `d` :class:`KnotVector` instances
        spans: per axis, the knot span index of the cell
        points (ndarray): `(nq, d)` array of points within that cell
        n (int): maximum derivative order

    Returns:
        A pair `(indices, ders)`, where `indices` contains the raveled tensor
        product indices of the `N = prod(p_k + 1)` active functions and `ders`
        is a list of `n+1` arrays of shapes `(N, nq)`, `(N, nq, d)` and
        `(N, nq, d, d)`.
    """
    dim = len(kvs)
    points = utils.as_points(points, dim)
    nq = points.shape[0]
    D = [active_deriv(kvs[k], points[:, k], min(n, 2), span=spans[k]) for k in range(dim)]

    first = [spans[k] - kvs[k].p for k in range(dim)]
    ranges = [np.arange(f, f + kv.p + 1) for (f, kv) in zip(first, kvs)]
    multi = utils.cartesian_product(ranges)
    indices = np.ravel_multi_index(tuple(multi.T), tuple(kv.numdofs for kv in kvs))

    ders = []
    for order, alphas in enumerate(_derivative_orders(dim, n)):
        tables = [utils.tensor_columns([D[k][a[k]] for k in range(dim)]) for a in alphas]
        if order == 0:
            ders.append(tables[0])
        else:
            T = np.stack(tables, axis=-1)       # N x nq x (d or d*d)
            ders.append(T.reshape((T.shape[0], nq) + order * (dim,)))
    return indices, ders

################################################################################

class BSplineFunc:
    """Any function that is given in terms of a tensor product B-spline basis with coefficients.

    Arguments:
        kvs (seq): tuple of `d` :class:`KnotVector`.
        coeffs (ndarray): coefficient array

    `kvs` represents a tensor product B-spline basis, where the *i*-th
    :class:`KnotVector` describes the B-spline basis in the *i*-th
    coordinate direction.

    `coeffs` is the array of coefficients with respect to this tensor product basis.
    The length of its first `d` axes must match the number of degrees of freedom
    in the corresponding :class:`KnotVector`.
    Trailing axes, if any, determine the output dimension of the function.

    For convenience, if `coeffs` is a vector, it is reshaped to the proper
    size for the tensor product basis. The result is a scalar-valued function.

    Attributes:
        kvs (seq): the knot vectors representing the tensor product basis
        coeffs (ndarray): the coefficients for the function or geometry
        sdim (int): dimension of the parameter domain
        dim (int): dimension of the output of the function
    """
    def __init__(self, kvs, coeffs):
        if isinstance(kvs, KnotVector):
            kvs = (kvs,)
        self.kvs = tuple(kvs)
        self.sdim = len(self.kvs)    # source dimension

        N = tuple(kv.numdofs for kv in self.kvs)
        coeffs = np.asanyarray(coeffs, dtype=float)
        if coeffs.ndim == 1 and self.sdim > 1:
            assert coeffs.shape[0] == np.prod(N), "Wrong length of coefficient vector"
            coeffs = coeffs.reshape(N)
        assert N == coeffs.shape[:self.sdim], "Wrong shape of coefficients"
        self.coeffs = coeffs

        # determine target dimension
        dim = coeffs.shape[self.sdim:]
        if len(dim) == 0:
            dim = 1
        elif len(dim) == 1:
            dim = dim[0]
        else:
            raise ValueError('Tensor-valued B-spline functions not implemented')
        self.dim = dim

    def __call__(self, *x):
        return self.pointwise_eval(np.array([x], dtype=float))[0]

    def output_shape(self):
        return self.coeffs.shape[self.sdim:]

    def is_scalar(self):
        """Returns True if the function is scalar-valued."""
        return len(self.output_shape()) == 0

    def is_vector(self):
        """Returns True if the function is vector-valued."""
        return len(self.output_shape()) == 1

    def _eval_ders(self, points, n):
        points = utils.as_points(points, self.sdim)
        C = self.coeffs.reshape((-1, self.dim))
        result = [np.empty((points.shape[0], self.dim) + k * (self.sdim,))
                  for k in range(n + 1)]
        for i, x in enumerate(points):
            spans = [kv.findspan(x[k]) for (k, kv) in enumerate(self.kvs)]
            idx, ders = tp_active_ders(self.kvs, spans, x, n)
            C_act = C[idx]          # N x dim
            for k in range(n + 1):
                # contract over the active functions
                result[k][i] = np.tensordot(C_act, ders[k][:, 0], axes=(0, 0))
        return result

    def pointwise_eval(self, points):
        """Evaluate the B-spline function at an unstructured list of points.

        Args:
            points: an `(n, sdim)` array of points in the parameter domain

        Returns:
            An `ndarray` of shape `(n,)` for scalar or `(n, dim)` for vector
            functions.
        """
        val = self._eval_ders(points, 0)[0]
        return val[:, 0] if self.is_scalar() else val

    def pointwise_jacobian(self, points):
        """Evaluate the Jacobian of the B-spline function at an unstructured list of points.

        Returns:
            An `ndarray` containing the Jacobian matrices at the `points`,
            i.e., a matrix of size `dim x sdim` per evaluation point.
        """
        return self._eval_ders(points, 1)[1]

    def pointwise_hessian(self, points):
        """Evaluate the second derivatives at an unstructured list of points;
        returns an array of shape `(n, dim, sdim, sdim)`."""
        return self._eval_ders(points, 2)[2]

    @property
    def support(self):
        """Return a sequence of pairs `(lower,upper)`, one per source dimension,
        which describe the extent of the support in the parameter space."""
        return tuple(kv.support() for kv in self.kvs)

    def bounding_box(self, grid=1):
        """Compute a bounding box for the image of this geometry.

        By default, only the corners are taken into account. By choosing
        `grid > 1`, a finer grid can be used (for non-convex geometries).

        Returns:
            a tuple of `(lower,upper)` limits per dimension
        """
        grid = [np.linspace(s[0], s[1], grid+1) for s in self.support]
        X = self.pointwise_eval(utils.cartesian_product(grid)).reshape((-1, self.dim))
        return tuple((X[:, d].min(), X[:, d].max()) for d in range(self.dim))

    def copy(self):
        """Return a copy of this geometry."""
        return BSplineFunc(
                tuple(kv.copy() for kv in self.kvs),
                self.coeffs.copy())

    def translate(self, offset):
        """Return a version of this geometry translated by the specified offset."""
        return BSplineFunc(self.kvs, self.coeffs + offset)

    def scale(self, factor):
        """Scale all control points either by a scalar factor or componentwise by
        a vector and return the resulting new function.
        """
        return BSplineFunc(self.kvs, self.coeffs * factor)

    def as_vector(self):
        """Convert a scalar function to a 1D vector function."""
        if self.is_vector():
            return self
        return BSplineFunc(self.kvs, self.coeffs[..., None])
