"""Description of convection-diffusion-reaction problems and their boundary
conditions.

The coefficients of the problem

    -div(A grad u) + b . grad u + c u = f

may be given as constants or as functions of the physical points. A function
receives an array of points of shape `(n, d)` and returns the values for all
points at once.
"""
import numpy as np

from .topology import BoxSide


def as_function(value, shape, dim):
    """Wrap a constant or a callable such that it returns an array of shape
    `(n,) + shape` for `n` points of dimension `dim`."""
    if callable(value):
        def f(x):
            x = np.atleast_2d(x)
            return np.asarray(value(x), dtype=float).reshape((x.shape[0],) + shape)
    else:
        v = np.asarray(value, dtype=float)
        if shape == (dim, dim) and v.ndim == 0:
            v = v * np.eye(dim)       # scalar diffusion
        v = np.broadcast_to(v, shape)
        def f(x):
            x = np.atleast_2d(x)
            return np.broadcast_to(v, (x.shape[0],) + shape).copy()
    return f


class CDRPde:
    """Convection-diffusion-reaction equation.

    Args:
        diffusion: `(d, d)` diffusion matrix `A`, or a scalar multiple of the identity
        convection: convection vector `b` of length `d`
        reaction: scalar reaction coefficient `c`
        rhs: source term `f`
        dim (int): space dimension
    """
    def __init__(self, diffusion=1.0, convection=0.0, reaction=0.0, rhs=0.0, dim=2):
        self.dim = dim
        self.diffusion = as_function(diffusion, (dim, dim), dim)
        self.convection = as_function(convection, (dim,), dim)
        self.reaction = as_function(reaction, (), dim)
        self.rhs = as_function(rhs, (), dim)

    def __repr__(self):
        return '<CDRPde dim=%d>' % self.dim


class BoundaryConditions:
    """Dirichlet and Neumann data on the sides of the patches.

    Conditions are stored per unknown as `(patch, side, g)` triples, where `g`
    is a constant or a function of the physical points. Neumann data `g`
    prescribes the normal flux `A grad u . n`.
    """
    def __init__(self, dim=2):
        self.dim = dim
        self._dirichlet = []
        self._neumann = []

    def add_dirichlet(self, patch, side, g, unknown=0):
        self._dirichlet.append((unknown, patch, BoxSide.parse(side, self.dim),
            as_function(g, (), self.dim)))

    def add_neumann(self, patch, side, g, unknown=0):
        self._neumann.append((unknown, patch, BoxSide.parse(side, self.dim),
            as_function(g, (), self.dim)))

    def dirichlet_sides(self, unknown=0):
        """The `(patch, side)` pairs carrying Dirichlet conditions."""
        return [(p, s) for (u, p, s, _) in self._dirichlet if u == unknown]

    def neumann_sides(self, unknown=0):
        return [(p, s) for (u, p, s, _) in self._neumann if u == unknown]

    def dirichlet(self, unknown=0):
        """The `(patch, side, g)` triples of the Dirichlet conditions."""
        return [(p, s, g) for (u, p, s, g) in self._dirichlet if u == unknown]

    def neumann(self, unknown=0):
        return [(p, s, g) for (u, p, s, g) in self._neumann if u == unknown]
