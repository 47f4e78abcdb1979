"""Element visitors compute the local matrices and vectors of a weak form on
one element at a time.

The assembler drives every visitor through the same protocol: once per
patch it calls :meth:`ElementVisitor.initialize`, which returns the
quadrature rule; then, for every element of the patch, it maps the rule to
the element and calls :meth:`~ElementVisitor.evaluate`,
:meth:`~ElementVisitor.assemble` and :meth:`~ElementVisitor.local_to_global`
in this order. Visitors own their local buffers and must not share them.
"""
import abc

import numpy as np

from .errors import DimensionError, UnsupportedError
from .quadrature import GaussRule
from .pde import as_function


class ElementVisitor(abc.ABC):
    """Base class of the element visitors."""

    @abc.abstractmethod
    def initialize(self, basis, patch, options):
        """Prepare for assembling on `patch`.

        Returns:
            a pair `(rule, flags)` of the :class:`.GaussRule` to use and the
            set of geometric quantities required from the geometry evaluator
        """

    @abc.abstractmethod
    def evaluate(self, basis, geo_eval, nodes, element=None):
        """Evaluate basis functions, geometry and coefficients at the
        quadrature `nodes` of one element."""

    @abc.abstractmethod
    def assemble(self, element, geo_eval, weights):
        """Accumulate the local contributions from the quadrature `weights`."""

    @abc.abstractmethod
    def local_to_global(self, patch, eliminated, system):
        """Scatter the local contributions into the :class:`.SparseSystem`."""


def _check_dim(dim):
    if dim not in (2, 3):
        raise DimensionError('element assembly is implemented for dimensions 2 and 3, not %d' % dim)

def element_boundary_points(lower, upper, N=2):
    """Points on the boundary of the 2D box `[lower, upper]`: `N+1` equally
    spaced points on each of the four edges."""
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    if lower.shape[0] != 2:
        raise UnsupportedError('element boundary sampling is only implemented in 2D')
    s = np.linspace(0.0, 1.0, N + 1)
    xs = lower[0] + s * (upper[0] - lower[0])
    ys = lower[1] + s * (upper[1] - lower[1])
    edges = [
        np.column_stack((xs, np.full(N + 1, lower[1]))),
        np.column_stack((xs, np.full(N + 1, upper[1]))),
        np.column_stack((np.full(N + 1, lower[0]), ys)),
        np.column_stack((np.full(N + 1, upper[0]), ys)),
    ]
    return np.vstack(edges)


class CDRVisitor(ElementVisitor):
    """Galerkin or SUPG discretization of the convection-diffusion-reaction
    equation `-div(A grad u) + b . grad u + c u = f`.

    Args:
        rhs, diffusion, convection, reaction: the coefficients as constants
            or functions of the physical points (see :mod:`mpiga.pde`)
        stabilization: 0 for the plain Galerkin method, 1 for SUPG; if None,
            the `Stabilization` option passed to :meth:`initialize` is used
    """
    def __init__(self, rhs, diffusion, convection, reaction, stabilization=None, dim=2):
        self.dim = dim
        self.rhs_f = as_function(rhs, (), dim)
        self.diffusion = as_function(diffusion, (dim, dim), dim)
        self.convection = as_function(convection, (dim,), dim)
        self.reaction = as_function(reaction, (), dim)
        self.stabilization = stabilization

    @classmethod
    def from_pde(cls, pde, stabilization=None):
        vis = cls.__new__(cls)
        vis.dim = pde.dim
        vis.rhs_f = pde.rhs
        vis.diffusion = pde.diffusion
        vis.convection = pde.convection
        vis.reaction = pde.reaction
        vis.stabilization = stabilization
        return vis

    def initialize(self, basis, patch, options):
        _check_dim(basis.dim)
        if basis.dim != self.dim:
            raise DimensionError('visitor is set up for dimension %d, basis has dimension %d'
                    % (self.dim, basis.dim))
        stab = options.get('Stabilization', 0) if self.stabilization is None else self.stabilization
        if stab not in (0, 1):
            raise ValueError('Stabilization must be 0 (none) or 1 (SUPG), got %r' % (stab,))
        self.stab = stab
        rule = GaussRule.for_basis(basis, options.get('quA', 1), options.get('quB', 1))
        flags = {'values', 'jacobian', 'measure'}
        if stab:
            flags.add('hessian')
        return rule, flags

    def evaluate(self, basis, geo_eval, nodes, element=None):
        self.actives = basis.active(nodes[0], element)
        n = 2 if self.stab else 1
        self.basis_data = basis.eval_all_ders(nodes, n, element)
        geo_eval.evaluate_at(nodes)
        X = geo_eval.values()
        self.A = self.diffusion(X)
        self.b = self.convection(X)
        self.c = self.reaction(X)
        self.f = self.rhs_f(X)

        N = len(self.actives)
        self.local_mat = np.zeros((N, N))
        self.local_rhs = np.zeros(N)
        self.supg_mat = np.zeros((N, N)) if self.stab else None

    def assemble(self, element, geo_eval, weights):
        vals, grads = self.basis_data[0], self.basis_data[1]
        for k in range(len(weights)):
            w = weights[k] * geo_eval.measure(k)
            phi = vals[:, k]
            G = geo_eval.transform_gradients(k, grads[:, k, :])     # N x d
            A, b, c = self.A[k], self.b[k], self.c[k]
            bgrad = G.dot(b)                                        # b . grad(phi_i)

            self.local_rhs += w * self.f[k] * phi
            self.local_mat += w * G.dot(A).dot(G.T)
            self.local_mat += w * np.outer(phi, bgrad)
            self.local_mat += w * c * np.outer(phi, phi)

            if self.stab:
                H = geo_eval.transform_hessians(k, self.basis_data[2][:, k])   # N x d x d
                grad_b_grads = np.einsum('l,nlm->nm', b, H)                     # b . hess(phi_i)
                self.supg_mat += w * grad_b_grads.dot(A).dot(G.T)
                self.supg_mat += w * np.outer(bgrad, bgrad)
                self.supg_mat += w * c * np.outer(bgrad, phi)

        if self.stab:
            # evaluates the geometry at new points, so it has to come last
            self.tau = self.supg_parameter(element, geo_eval)
            self.local_mat += self.tau * self.supg_mat

    def supg_parameter(self, element, geo_eval):
        """Extent of the element in direction of the convection field,
        divided by twice the magnitude of the field."""
        x0 = geo_eval.values()[:1]
        b = self.convection(x0)[0]
        nb = np.linalg.norm(b)
        if nb == 0.0:
            return 0.0
        if geo_eval.dim != 2:
            raise UnsupportedError('SUPG parameter is only implemented in 2D')
        geo_eval.evaluate_at(element_boundary_points(element.lower, element.upper, N=2))
        proj = geo_eval.values().dot(b)
        return (proj.max() - proj.min()) / (2 * nb)

    def local_to_global(self, patch, eliminated, system):
        gl = system.map_col_indices(self.actives, patch)
        system.push(self.local_mat, self.local_rhs, gl, eliminated, 0, 0)


class NeumannVisitor(ElementVisitor):
    """Boundary load `int_side g phi_i ds` for a Neumann condition on one
    side of a patch."""
    def __init__(self, g, side, dim=2):
        self.g = g if callable(g) else as_function(g, (), dim)
        self.side = side

    def initialize(self, basis, patch, options):
        _check_dim(basis.dim)
        rule = GaussRule.for_basis(basis, options.get('quA', 1), options.get('quB', 1))
        return rule.boundary(self.side), {'values', 'jacobian'}

    def evaluate(self, basis, geo_eval, nodes, element=None):
        self.actives = basis.active(nodes[0], element)
        self.vals = basis.eval_all_ders(nodes, 0, element)[0]
        geo_eval.evaluate_at(nodes)
        self.gvals = self.g(geo_eval.values())
        self.local_rhs = np.zeros(len(self.actives))

    def assemble(self, element, geo_eval, weights):
        for k in range(len(weights)):
            w = weights[k] * geo_eval.boundary_measure(k, self.side)
            self.local_rhs += w * self.gvals[k] * self.vals[:, k]

    def local_to_global(self, patch, eliminated, system):
        gl = system.map_row_indices(self.actives, patch)
        system.push_rhs(self.local_rhs, gl, 0)
