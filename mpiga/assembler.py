"""Assembly of convection-diffusion-reaction problems over a
:class:`.MultiBasis`.

The :class:`Assembler` numbers the dofs, computes the values of the
eliminated Dirichlet dofs and drives the element visitors of
:mod:`mpiga.visitors` over all patches.

Example::

    mb = MultiBasis([TensorBSplineBasis(kvs), TensorBSplineBasis(kvs)], topology)
    bc = BoundaryConditions()
    bc.add_dirichlet(0, 'west', 0.0)
    asm = Assembler(mb, geos, CDRPde(rhs=1.0), bc)
    x = asm.solve()
    coeffs = asm.construct_solution(x)
"""
import numpy as np

from . import solvers, utils
from .errors import DimensionError, TopologyError
from .geometry import GeometryEvaluator
from .quadrature import GaussRule
from .system import SparseSystem
from .topology import PatchSide
from .visitors import CDRVisitor, NeumannVisitor


def default_options():
    """The default assembler options.

    - ``quA``, ``quB``: use `quA * p + quB` quadrature nodes per direction
    - ``Stabilization``: 0 for Galerkin, 1 for SUPG
    - ``DirichletValues``: ``'l2'`` (boundary L2 projection) or ``'interpolation'``
    - ``progress``: show a progress bar during the element loop
    """
    return dict(quA=1, quB=1, Stabilization=0, DirichletValues='l2', progress=False)


################################################################################
# Dirichlet values
################################################################################

def _side_projection(basis, geo, side, g, quA=1, quB=1):
    """L2 projection of `g` onto the traces of the functions on `side`."""
    bidx = basis.boundary(side)
    pos = {j: i for (i, j) in enumerate(bidx)}
    n = len(bidx)
    M = np.zeros((n, n))
    r = np.zeros(n)
    rule = GaussRule.for_basis(basis, quA, quB).boundary(side)
    geo_eval = GeometryEvaluator(geo)
    for el in basis.elements_on_side(side):
        nodes, weights = rule.map_to(el.lower, el.upper)
        act = basis.active(nodes[0], el)
        vals = basis.eval_all_ders(nodes, 0, el)[0]
        geo_eval.evaluate_at(nodes)
        gvals = g(geo_eval.values())
        keep = [i for (i, j) in enumerate(act) if j in pos]
        loc = np.array([pos[act[i]] for i in keep], dtype=int)
        V = vals[keep]
        w = weights * np.array([geo_eval.boundary_measure(k, side) for k in range(len(weights))])
        M[np.ix_(loc, loc)] += (V * w).dot(V.T)
        r[loc] += V.dot(w * gvals)
    return bidx, np.linalg.lstsq(M, r, rcond=None)[0]

def _side_interpolation(basis, geo, side, g):
    """Interpolate `g` at the anchors of the functions on `side`."""
    bidx = basis.boundary(side)
    anchors = basis.boundary_anchors(side)
    if len(bidx) == 0:
        return bidx, np.zeros(0)
    X = GeometryEvaluator(geo).evaluate_at(anchors).values()
    E = basis.eval_matrix(anchors)[:, bidx].toarray()
    return bidx, np.linalg.lstsq(E, g(X), rcond=None)[0]

def compute_dirichlet_values(multibasis, geos, bc, mapper, method='l2', unknown=0, quA=1, quB=1):
    """Compute the values of the eliminated dofs of `mapper`.

    Every Dirichlet side is treated separately, either by L2 projection onto
    the boundary traces (``method='l2'``) or by interpolation at the Greville
    anchors of the boundary functions (``method='interpolation'``). Dofs which
    receive values from several sides (corners, or sides of different patches
    glued across an interface) get the average.

    Returns:
        ndarray: vector of length `mapper.boundary_size`
    """
    if method not in ('l2', 'interpolation'):
        raise ValueError("DirichletValues must be 'l2' or 'interpolation', got %r" % (method,))
    total = np.zeros(mapper.boundary_size)
    count = np.zeros(mapper.boundary_size)
    if bc is None:
        return total
    for (p, side, g) in bc.dirichlet(unknown):
        if method == 'l2':
            bidx, vals = _side_projection(multibasis[p], geos[p], side, g, quA, quB)
        else:
            bidx, vals = _side_interpolation(multibasis[p], geos[p], side, g)
        b = mapper.bindex(bidx, p)
        np.add.at(total, b, vals)
        np.add.at(count, b, 1)
    assigned = count > 0
    total[assigned] /= count[assigned]
    return total


################################################################################
# Assembler
################################################################################

class Assembler:
    """Assembles the linear system of a :class:`.CDRPde` over a
    :class:`.MultiBasis`.

    Args:
        multibasis: the :class:`.MultiBasis` describing the discretization
        geos: one geometry map (:class:`.BSplineFunc`) per patch
        pde: the :class:`.CDRPde` to discretize
        bc: optional :class:`.BoundaryConditions`
        options (dict): overrides for :func:`default_options`
        conforming (bool): glue the dofs across interfaces
    """
    def __init__(self, multibasis, geos, pde, bc=None, options=None, conforming=True):
        if len(geos) != len(multibasis):
            raise ValueError('got %d geometries for %d patches' % (len(geos), len(multibasis)))
        if multibasis.dim not in (2, 3):
            raise DimensionError('only dimensions 2 and 3 are supported, not %d' % multibasis.dim)
        if pde.dim != multibasis.dim:
            raise DimensionError('PDE has dimension %d, bases have dimension %d'
                    % (pde.dim, multibasis.dim))
        self.multibasis = multibasis
        self.geos = list(geos)
        self.pde = pde
        self.bc = bc
        self.conforming = conforming
        self.options = default_options()
        self.options.update(options or {})
        if self.options['Stabilization'] not in (0, 1):
            raise ValueError('Stabilization must be 0 or 1, got %r' % (self.options['Stabilization'],))
        self.mapper = None
        self.eliminated_values = None
        self.system = None

    @property
    def num_dofs(self):
        """Number of free dofs, available after :meth:`assemble`."""
        return self.mapper.free_size if self.mapper is not None else None

    def _visit(self, visitor, p, elements):
        basis = self.multibasis[p]
        geo_eval = GeometryEvaluator(self.geos[p])
        rule, _ = visitor.initialize(basis, p, self.options)
        for el in elements:
            nodes, weights = rule.map_to(el.lower, el.upper)
            visitor.evaluate(basis, geo_eval, nodes, el)
            visitor.assemble(el, geo_eval, weights)
            visitor.local_to_global(p, self.eliminated_values, self.system)

    def assemble(self):
        """Assemble and return the :class:`.SparseSystem`."""
        mb = self.multibasis
        self.mapper = mb.get_mapper(conforming=self.conforming, bc=self.bc)
        self.eliminated_values = compute_dirichlet_values(mb, self.geos, self.bc, self.mapper,
                method=self.options['DirichletValues'],
                quA=self.options['quA'], quB=self.options['quB'])
        self.system = SparseSystem(self.mapper)
        self.system.reserve(int(np.prod([2 * mb.max_degree(k) + 1 for k in range(mb.dim)])))

        visitor = CDRVisitor.from_pde(self.pde, stabilization=self.options['Stabilization'])
        tqdm = utils.progress_bar(self.options['progress'])
        for p in tqdm(range(len(mb))):
            self._visit(visitor, p, mb[p].elements())

        if self.bc is not None:
            for (p, side, g) in self.bc.neumann():
                if not mb.topology.is_boundary(PatchSide(p, side)):
                    raise TopologyError('Neumann condition on side %s of patch %d, which is not a boundary'
                            % (side.name, p))
                self._visit(NeumannVisitor(g, side), p, mb[p].elements_on_side(side))
        return self.system

    def _ensure_assembled(self):
        if self.system is None:
            self.assemble()

    def matrix(self):
        self._ensure_assembled()
        return self.system.matrix()

    def rhs(self):
        self._ensure_assembled()
        return self.system.rhs()

    def solve(self, method='direct', **kwargs):
        """Solve the assembled system; returns the free dof values."""
        self._ensure_assembled()
        return solvers.solve(self.system, method=method, **kwargs)

    def construct_solution(self, x):
        """Per-patch coefficient vectors of the discrete solution, with the
        eliminated dofs filled in from the Dirichlet values."""
        self._ensure_assembled()
        full = np.concatenate((np.asarray(x, dtype=float).ravel(), self.eliminated_values))
        return [full[self.mapper.global_dofs(p)] for p in range(len(self.multibasis))]
