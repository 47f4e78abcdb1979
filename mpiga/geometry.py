"""Classes and functions for creating tensor product B-spline patches and for
evaluating their geometric quantities at quadrature points.
"""
import numpy as np

from . import bspline
from . import utils
from .bspline import BSplineFunc
from .errors import DimensionError

import functools

################################################################################
# Evaluation of geometry maps
################################################################################

class GeometryEvaluator:
    """Evaluates a geometry map and its derived quantities at a set of
    parameter points.

    After calling :meth:`evaluate_at`, point `k` of the last evaluated set can
    be queried for its Jacobian, measure and the transformation of basis
    function derivatives from the parameter to the physical domain.
    """
    def __init__(self, geo):
        self.geo = geo
        self.dim = geo.dim
        self.sdim = geo.sdim
        if self.dim != self.sdim:
            raise DimensionError('geometry maps from %dD to %dD; only volumetric maps are supported'
                    % (self.sdim, self.dim))
        self._points = None
        self._values = None
        self._jacs = None
        self._jinv = None

    def evaluate_at(self, points):
        """Evaluate the map and its Jacobian at the parameter points `(nq, d)`."""
        points = utils.as_points(points, self.sdim)
        vals, jacs = self.geo._eval_ders(points, 1)
        self._points = points
        self._values = vals
        self._jacs = jacs
        self._jinv = np.linalg.inv(jacs)
        return self

    @property
    def num_points(self):
        return 0 if self._points is None else self._points.shape[0]

    def points(self):
        return self._points

    def values(self):
        """Physical points, shape `(nq, dim)`."""
        return self._values

    def jacobian(self, k):
        return self._jacs[k]

    def measure(self, k):
        """Volume element `|det J|` at point `k`."""
        return abs(np.linalg.det(self._jacs[k]))

    def transform_gradients(self, k, grads):
        """Map parameter gradients `(N, d)` to physical gradients `J^{-T} g`."""
        return grads.dot(self._jinv[k])

    def transform_hessians(self, k, hessians):
        """Pull back parameter Hessians `(N, d, d)` as `J^{-T} H J^{-1}`.

        The term involving the second derivatives of the geometry map is
        neglected, which is exact for affine maps.
        """
        Jinv = self._jinv[k]
        return np.einsum('ai,nab,bj->nij', Jinv, hessians, Jinv)

    def _cofactor_column(self, k, axis):
        return self._jinv[k][axis, :]      # gradient of the parameter coordinate `axis`

    def boundary_measure(self, k, side):
        """Surface element at point `k`, which must lie on the given side."""
        g = self._cofactor_column(k, side.axis)
        return self.measure(k) * np.linalg.norm(g)

    def outer_normal(self, k, side):
        """Unit outer normal at point `k` on the given side."""
        g = self._cofactor_column(k, side.axis)
        n = g / np.linalg.norm(g)
        return n if side.param == 1 else -n

################################################################################
# Examples of 2D geometries
################################################################################

def unit_square(num_intervals=1):
    """Unit square with given number of intervals per direction.

    Returns:
        :class:`.BSplineFunc` 2D geometry
    """
    return unit_cube(dim=2, num_intervals=num_intervals)

def bspline_quarter_annulus(r1=1.0, r2=2.0):
    """A B-spline approximation of a quarter annulus in the first quadrant.

    The first parameter direction runs along the arc, the second one
    in radial direction.

    Args:
        r1 (float): inner radius
        r2 (float): outer radius

    Returns:
        :class:`.BSplineFunc` 2D geometry
    """
    kv_phi = bspline.make_knots(2, 0.0, 1.0, 1)
    kv_r = bspline.make_knots(1, 0.0, 1.0, 1)

    coeffs = np.array([
            [[ r1, 0.0],
             [ r2, 0.0]],
            [[ r1,  r1],
             [ r2,  r2]],
            [[0.0,  r1],
             [0.0,  r2]],
    ])
    return BSplineFunc((kv_phi, kv_r), coeffs)

################################################################################
# Examples of 3D geometries
################################################################################

def unit_cube(dim=3, num_intervals=1):
    """The `dim`-dimensional unit cube with `num_intervals` intervals
    per coordinate direction.

    Returns:
        :class:`.BSplineFunc` geometry
    """
    return functools.reduce(tensor_product, dim * (line_segment(0.0, 1.0, intervals=num_intervals),))

def identity(extents):
    """Identity mapping (using linear splines) over a d-dimensional box
    given by `extents` as a list of (min,max) pairs or of :class:`.KnotVector`.

    Returns:
        :class:`.BSplineFunc` geometry
    """
    # if any inputs are KnotVectors, extract their supports
    extents = [
        ex.support() if isinstance(ex, bspline.KnotVector) else ex
        for ex in extents
    ]
    segs = []
    for ex in extents:
        kv = bspline.make_knots(1, ex[0], ex[1], 1)
        segs.append(BSplineFunc(kv, np.array([[ex[0]], [ex[1]]])))
    return functools.reduce(tensor_product, segs)

################################################################################
# Functions for creating curves
################################################################################

def line_segment(x0, x1, intervals=1):
    """Return a :class:`.BSplineFunc` which describes the line between the
    vectors `x0` and `x1` over the parameter interval (0,1).

    If specified, `intervals` is the number of intervals in the underlying
    linear spline space. By default, the minimal spline space with 2 dofs is
    used.
    """
    if np.isscalar(x0): x0 = [x0]
    if np.isscalar(x1): x1 = [x1]
    assert len(x0) == len(x1), 'Vectors must have same dimension'
    # produce 1D arrays
    x0 = np.array(x0, dtype=float).ravel()
    x1 = np.array(x1, dtype=float).ravel()
    # interpolate linearly
    S = np.linspace(0.0, 1.0, intervals+1).reshape((intervals+1, 1))
    coeffs = (1-S) * x0 + S * x1
    return BSplineFunc(bspline.make_knots(1, 0.0, 1.0, intervals), coeffs)

################################################################################
# Operations on geometries
################################################################################

def tensor_product(G1, G2, *Gs):
    r"""Compute the tensor product of two or more :class:`.BSplineFunc`
    functions.  This means that given two input functions

    .. math:: G_1(x), G_2(y),

    it returns a new function

    .. math:: G(x,y) = G_1(x) \times G_2(y),

    where :math:`\times` means that vectors are joined together.
    The result has source dimension equal to the sum of the source dimensions
    of the input functions, and target dimension equal to the sum of their
    target dimensions.
    """
    if Gs != ():
        return tensor_product(G1, tensor_product(G2, *Gs))
    G1, G2 = G1.as_vector(), G2.as_vector()

    SD1, SD2 = (np.atleast_1d(G.coeffs.shape[:G.sdim]) for G in (G1, G2))
    VD1, VD2 = (np.atleast_1d(G.coeffs.shape[G.sdim:]) for G in (G1, G2))
    shape1 = np.concatenate((SD1, np.ones_like(SD2), VD1))
    shape2 = np.concatenate((np.ones_like(SD1), SD2, VD2))
    target_shape1 = np.concatenate((SD1, SD2, VD1))
    target_shape2 = np.concatenate((SD1, SD2, VD2))
    C1 = np.broadcast_to(np.reshape(G1.coeffs, shape1), target_shape1)
    C2 = np.broadcast_to(np.reshape(G2.coeffs, shape2), target_shape2)
    C = np.concatenate((C1, C2), axis=-1)
    return BSplineFunc(G1.kvs + G2.kvs, C)

def translate(geo, offset):
    """Return a copy of `geo` translated by `offset`."""
    return geo.translate(np.asarray(offset, dtype=float))

def scale(geo, factor):
    """Return a copy of `geo` with all control points scaled by `factor`."""
    return geo.scale(factor)
