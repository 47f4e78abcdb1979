"""Collections of patch bases together with the topology connecting them."""
import numpy as np

from .bases import Basis
from .dofmapper import DofMapper
from .errors import DimensionError, EmptyCollectionError, TopologyError
from .topology import BoxTopology, BoxSide, PatchSide
from . import repair


class MultiBasis:
    """The bases of all patches of a multipatch domain, together with a
    :class:`.BoxTopology` describing their interfaces and boundaries.

    Args:
        bases: a sequence of :class:`.Basis` instances; the collection takes
            ownership of them
        topology: the :class:`.BoxTopology`; if omitted, an empty topology
            with one box per basis is created
    """
    def __init__(self, bases=None, topology=None):
        self.bases = []
        self.topology = topology
        for b in (bases or []):
            self._append(b)
        if self.topology is None:
            dim = self.bases[0].dim if self.bases else 0
            self.topology = BoxTopology(dim, len(self.bases))
        elif self.topology.num_boxes != len(self.bases):
            raise TopologyError('topology has %d boxes but %d bases were given'
                    % (self.topology.num_boxes, len(self.bases)))

    @classmethod
    def from_basis(cls, basis):
        """Single patch whose sides are all boundary."""
        mb = cls([basis])
        mb.topology.add_auto_boundaries()
        return mb

    @classmethod
    def from_geometries(cls, bases, geos):
        """Patches with interfaces detected from the geometries `geos`."""
        if len(bases) != len(geos):
            raise ValueError('got %d bases but %d geometries' % (len(bases), len(geos)))
        return cls(bases, BoxTopology.from_geometries(geos))

    def _append(self, basis):
        if not isinstance(basis, Basis):
            raise TypeError('expected a Basis, got %s' % type(basis).__name__)
        if self.bases and basis.dim != self.bases[0].dim:
            raise DimensionError('cannot add a basis of dimension %d to a collection of dimension %d'
                    % (basis.dim, self.bases[0].dim))
        self.bases.append(basis)

    def add_basis(self, basis):
        """Append the basis of a new patch and return its index."""
        self._append(basis)
        if self.topology.dim == 0:
            self.topology = BoxTopology(basis.dim)
        return self.topology.add_box()

    def add_interface(self, p1, s1, p2, s2, **kwargs):
        return self.topology.add_interface(p1, s1, p2, s2, **kwargs)

    def copy(self):
        return MultiBasis([b.copy() for b in self.bases], self.topology.copy())

    def __len__(self):
        return len(self.bases)

    def __getitem__(self, i):
        return self.bases[i]

    def __iter__(self):
        return iter(self.bases)

    @property
    def dim(self):
        return self.topology.dim

    def sizes(self):
        return [b.size for b in self.bases]

    def total_size(self):
        """Sum of the patch sizes, counting interface functions on both sides."""
        return sum(self.sizes())

    ############################################################################
    # Degrees
    ############################################################################

    def _check_nonempty(self):
        if not self.bases:
            raise EmptyCollectionError('the MultiBasis is empty')

    def max_cwise_degree(self):
        """Componentwise maximum of the degrees over all patches."""
        self._check_nonempty()
        return np.array([max(b.degree(k) for b in self.bases) for k in range(self.dim)])

    def min_cwise_degree(self):
        self._check_nonempty()
        return np.array([min(b.degree(k) for b in self.bases) for k in range(self.dim)])

    def max_degree(self, k=None):
        """Maximum degree along axis `k`, or over all axes if `k` is None."""
        d = self.max_cwise_degree()
        return int(d.max() if k is None else d[k])

    def min_degree(self, k=None):
        d = self.min_cwise_degree()
        return int(d.min() if k is None else d[k])

    ############################################################################
    # Refinement
    ############################################################################

    def uniform_refine(self):
        for b in self.bases:
            b.uniform_refine()

    def refine_elements(self, patch, boxes):
        return self.bases[patch].refine_elements(boxes)

    def repair_interface(self, bi):
        """Refine both patches of `bi` once so that the refinement levels
        agree on the interface. Returns True if anything was refined."""
        return repair.repair_interface(bi, self.bases[bi.first.patch], self.bases[bi.second.patch])

    def repair_interface_2d(self, bi):
        """Like :meth:`repair_interface`, using the 2D interval merge."""
        return repair.repair_interface(bi, self.bases[bi.first.patch], self.bases[bi.second.patch],
                fast=True)

    def repair_interfaces(self, max_passes=None, fast=False):
        """Repair all interfaces, in topology order, until no more changes
        occur. Returns the number of passes which changed something."""
        passes = 0
        while max_passes is None or passes < max_passes:
            changed = False
            for bi in self.topology.interfaces:
                if fast:
                    changed |= self.repair_interface_2d(bi)
                else:
                    changed |= self.repair_interface(bi)
            if not changed:
                break
            passes += 1
        return passes

    ############################################################################
    # Dof mapping
    ############################################################################

    def match_interface(self, bi, mapper):
        """Glue the functions which coincide across `bi` in `mapper`."""
        idx1, idx2 = self.bases[bi.first.patch].match_with(bi, self.bases[bi.second.patch])
        mapper.match_dofs(bi.first.patch, idx1, bi.second.patch, idx2)

    def get_mapper(self, conforming=True, bc=None, unknown=0, finalize=True):
        """Create a :class:`.DofMapper` for this collection.

        Args:
            conforming (bool): glue functions across all interfaces
            bc: optional :class:`.BoundaryConditions`; functions on the
                Dirichlet sides of `unknown` are marked for elimination
            unknown (int): which unknown of `bc` to use
            finalize (bool): finalize the mapper before returning it
        """
        mapper = DofMapper(self.sizes())
        if conforming:
            for bi in self.topology.interfaces:
                self.match_interface(bi, mapper)
        if bc is not None:
            for (p, side) in bc.dirichlet_sides(unknown):
                side = BoxSide.parse(side, self.dim)
                if not self.topology.is_boundary(PatchSide(p, side)):
                    raise TopologyError('Dirichlet condition on side %s of patch %d, which is not a boundary'
                            % (side.name, p))
                mapper.mark_boundary(p, self.bases[p].boundary(side))
        if finalize:
            mapper.finalize()
        return mapper
