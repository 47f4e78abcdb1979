import numpy as np

from . import utils

def gauss_rule(deg, a, b):
    """Return nodes and weights for Gauss-Legendre rule of given degree in (a,b).

    a and b are arrays containing the start and end points of the intervals."""
    a, b = np.atleast_1d(a), np.atleast_1d(b)
    m = 0.5*(a + b)     # array of interval midpoints
    h = 0.5*(b - a)     # array of halved interval lengths
    x,w = np.polynomial.legendre.leggauss(deg)
    nodes   = (np.outer(h,x) + m[:, np.newaxis])
    weights = np.outer(h,w)
    return (nodes.ravel(), weights.ravel())

def make_iterated_quadrature(intervals, nqp):
    return gauss_rule(nqp, intervals[:-1], intervals[1:])

def make_tensor_quadrature(meshes, nqp):
    gauss = tuple(make_iterated_quadrature(mesh, nqp) for mesh in meshes)
    grid    = tuple(g[0] for g in gauss)
    weights = tuple(g[1] for g in gauss)
    return grid, weights


class GaussRule:
    """Tensor product Gauss-Legendre rule with `numnodes[k]` nodes along axis `k`.

    A side may be given, in which case the rule lives on that side of the
    cell: the normal coordinate is fixed and has a single node of weight 1.
    """
    def __init__(self, numnodes, side=None):
        self.numnodes = tuple(int(n) for n in numnodes)
        self.dim = len(self.numnodes)
        self.side = side

    @classmethod
    def for_basis(cls, basis, quA=1, quB=1):
        """Use `quA * p_k + quB` nodes per direction."""
        return cls([quA * basis.degree(k) + quB for k in range(basis.dim)])

    def boundary(self, side):
        """The restriction of this rule to one side of the cell."""
        return GaussRule(self.numnodes, side=side)

    @property
    def num_nodes(self):
        n = int(np.prod(self.numnodes))
        if self.side is not None:
            n //= self.numnodes[self.side.axis]
        return n

    def map_to(self, lower, upper):
        """Map the rule to the box `[lower, upper]`.

        Returns:
            `(nodes, weights)` with shapes `(nq, d)` and `(nq,)`
        """
        lower = np.asarray(lower, dtype=float)
        upper = np.asarray(upper, dtype=float)
        axes, wts = [], []
        for k in range(self.dim):
            if self.side is not None and k == self.side.axis:
                axes.append(np.array([upper[k] if self.side.param else lower[k]]))
                wts.append(np.ones(1))
            else:
                x, w = gauss_rule(self.numnodes[k], lower[k], upper[k])
                axes.append(x)
                wts.append(w)
        nodes = utils.cartesian_product(axes)
        weights = np.prod(utils.cartesian_product(wts), axis=1)
        return nodes, weights
