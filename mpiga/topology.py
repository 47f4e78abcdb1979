"""Topology of multipatch domains: sides of the parameter box, interfaces
between patches and the outer boundary.

A side of a `d`-dimensional box is described by an axis and a parameter
value, 0 for the lower and 1 for the upper end of that axis. Sides are
numbered ``2*axis + param``, so that in 2D we have west (0), east (1),
south (2) and north (3), followed by front (4) and back (5) in 3D.
"""
import itertools as it
from collections import namedtuple

import numpy as np
import scipy.spatial

from .errors import TopologyError

_SIDE_NAMES = ('west', 'east', 'south', 'north', 'front', 'back')
_SIDE_ALIASES = {'left': 'west', 'right': 'east', 'bottom': 'south', 'top': 'north'}


class BoxSide(namedtuple('BoxSide', ['axis', 'param'])):
    """One side of the parameter box of a patch."""
    __slots__ = ()

    def __new__(cls, axis, param):
        axis, param = int(axis), int(param)
        if axis < 0 or param not in (0, 1):
            raise TopologyError('invalid box side (%d, %d)' % (axis, param))
        return super().__new__(cls, axis, param)

    @property
    def index(self):
        return 2 * self.axis + self.param

    @property
    def direction(self):
        """The axis normal to this side."""
        return self.axis

    @property
    def is_low(self):
        return self.param == 0

    @property
    def name(self):
        return _SIDE_NAMES[self.index] if self.index < len(_SIDE_NAMES) else 'side%d' % self.index

    def opposite(self):
        return BoxSide(self.axis, 1 - self.param)

    def __repr__(self):
        return 'BoxSide(%s)' % self.name

    @classmethod
    def from_index(cls, i):
        return cls(i // 2, i % 2)

    @classmethod
    def all(cls, dim):
        """All `2*dim` sides in index order."""
        return [cls.from_index(i) for i in range(2 * dim)]

    @classmethod
    def parse(cls, spec, dim):
        """Convert a side given as a :class:`BoxSide`, an index, a name, an
        `(axis, param)` pair or a one-element bdspec `((axis, param),)`.
        """
        if isinstance(spec, BoxSide):
            side = spec
        elif isinstance(spec, (int, np.integer)):
            side = cls.from_index(int(spec))
        elif isinstance(spec, str):
            name = _SIDE_ALIASES.get(spec, spec)
            if name not in _SIDE_NAMES:
                raise TopologyError('unknown side name %r' % spec)
            side = cls.from_index(_SIDE_NAMES.index(name))
        else:
            spec = tuple(spec)
            if len(spec) == 1:      # bdspec
                spec = tuple(spec[0])
            if len(spec) != 2:
                raise TopologyError('invalid side specification %r' % (spec,))
            side = cls(*spec)
        if side.axis >= dim:
            raise TopologyError('side %r is invalid for dimension %d' % (side, dim))
        return side


class PatchSide(namedtuple('PatchSide', ['patch', 'side'])):
    """A side of a given patch."""
    __slots__ = ()

    def __new__(cls, patch, side):
        if not isinstance(side, BoxSide):
            side = BoxSide.from_index(side) if np.isscalar(side) else BoxSide(*side)
        return super().__new__(cls, int(patch), side)


class BoundaryInterface:
    """A pairing of two patch sides.

    Attributes:
        first, second (:class:`PatchSide`): the two sides
        dir_map (tuple): `dir_map[k]` is the axis of the second patch which
            corresponds to axis `k` of the first patch
        dir_orientation (tuple): `dir_orientation[k]` is True if axis `k` of
            the first patch and axis `dir_map[k]` of the second patch run in
            the same direction
    """
    def __init__(self, first, second, dir_map, dir_orientation):
        self.first = first
        self.second = second
        self.dir_map = tuple(int(j) for j in dir_map)
        self.dir_orientation = tuple(bool(o) for o in dir_orientation)

    @property
    def dim(self):
        return len(self.dir_map)

    def __repr__(self):
        return 'BoundaryInterface(%s, %s, dir_map=%s, orientation=%s)' % (
                self.first, self.second, self.dir_map, self.dir_orientation)

    def __eq__(self, other):
        return (isinstance(other, BoundaryInterface) and self.first == other.first
                and self.second == other.second and self.dir_map == other.dir_map
                and self.dir_orientation == other.dir_orientation)

    def inverse(self):
        """The same interface seen from the second patch."""
        inv_map = self.dim * [0]
        inv_orient = self.dim * [True]
        for k, j in enumerate(self.dir_map):
            inv_map[j] = k
            inv_orient[j] = self.dir_orientation[k]
        return BoundaryInterface(self.second, self.first, inv_map, inv_orient)

    def tangential_axes(self):
        """Tangential axes of the first side, in increasing order."""
        return [k for k in range(self.dim) if k != self.first.side.axis]

    def map_points(self, x, support1, support2):
        """Map parameter points `(n, d)` on the first side to the corresponding
        parameter points on the second side, given the parameter supports
        (sequences of `(lower, upper)` per axis) of both patches.
        """
        x = np.atleast_2d(np.asarray(x, dtype=float))
        y = np.empty_like(x)
        for k in range(self.dim):
            j = self.dir_map[k]
            a1, b1 = support1[k]
            a2, b2 = support2[j]
            t = (x[:, k] - a1) / (b1 - a1)
            if not self.dir_orientation[k]:
                t = 1.0 - t
            y[:, j] = a2 + t * (b2 - a2)
        s2 = self.second.side
        y[:, s2.axis] = support2[s2.axis][s2.param]
        return y


def _infer_dir_map(dim, side1, side2):
    """Normal axis goes to normal axis, the remaining axes in increasing order."""
    tang1 = [k for k in range(dim) if k != side1.axis]
    tang2 = [k for k in range(dim) if k != side2.axis]
    dir_map = dim * [0]
    dir_map[side1.axis] = side2.axis
    for a, b in zip(tang1, tang2):
        dir_map[a] = b
    return dir_map


class BoxTopology:
    """Combinatorial structure of a multipatch domain: the number of patches,
    the interfaces between their sides and the sides on the outer boundary.
    """
    def __init__(self, dim, num_boxes=0):
        self.dim = dim
        self._num_boxes = 0
        self._interfaces = []
        self._boundaries = []
        self._owner = dict()       # PatchSide -> interface index or None for boundary
        self.add_box(num_boxes)

    @property
    def num_boxes(self):
        return self._num_boxes

    @property
    def interfaces(self):
        return list(self._interfaces)

    @property
    def boundaries(self):
        return list(self._boundaries)

    def copy(self):
        T = BoxTopology(self.dim, self._num_boxes)
        T._interfaces = list(self._interfaces)
        T._boundaries = list(self._boundaries)
        T._owner = dict(self._owner)
        return T

    def add_box(self, n=1):
        """Add `n` patches whose sides are all unmatched; return the index of the first one."""
        first = self._num_boxes
        self._num_boxes += n
        return first

    def sides(self):
        """All patch sides of the topology."""
        return [PatchSide(p, s) for p in range(self._num_boxes)
                for s in BoxSide.all(self.dim)]

    def _check_free(self, ps):
        if not 0 <= ps.patch < self._num_boxes:
            raise TopologyError('unknown patch %d' % ps.patch)
        if ps.side.axis >= self.dim:
            raise TopologyError('side %r is invalid for dimension %d' % (ps.side, self.dim))
        if ps in self._owner:
            raise TopologyError('side %s of patch %d is already matched' % (ps.side.name, ps.patch))

    def add_interface(self, p1, s1, p2, s2, dir_map=None, orientation=None, flip=None):
        """Pair side `s1` of patch `p1` with side `s2` of patch `p2`.

        If no `dir_map` is given, the normal axis is mapped to the normal
        axis and the tangential axes in increasing order. `orientation` gives
        the orientation of all axes of the first patch; alternatively, `flip`
        gives the reversal of the tangential axes only (as a sequence of
        `dim - 1` booleans in increasing axis order).

        Returns:
            :class:`BoundaryInterface`: the new interface
        """
        side1 = BoxSide.parse(s1, self.dim)
        side2 = BoxSide.parse(s2, self.dim)
        ps1, ps2 = PatchSide(p1, side1), PatchSide(p2, side2)
        if ps1 == ps2:
            raise TopologyError('cannot pair a side with itself')
        self._check_free(ps1)
        self._check_free(ps2)

        if dir_map is None:
            dir_map = _infer_dir_map(self.dim, side1, side2)
        dir_map = [int(j) for j in dir_map]
        if sorted(dir_map) != list(range(self.dim)):
            raise TopologyError('direction map %s is not a permutation' % (dir_map,))
        if dir_map[side1.axis] != side2.axis:
            raise TopologyError('direction map %s does not map the normal axis %d to %d'
                    % (dir_map, side1.axis, side2.axis))

        normal_orient = (side1.param != side2.param)
        if orientation is None:
            orientation = self.dim * [True]
            if flip is not None:
                tang = [k for k in range(self.dim) if k != side1.axis]
                if len(flip) != len(tang):
                    raise TopologyError('flip needs %d entries' % len(tang))
                for k, f in zip(tang, flip):
                    orientation[k] = not f
        orientation = [bool(o) for o in orientation]
        if len(orientation) != self.dim:
            raise TopologyError('orientation needs %d entries' % self.dim)
        orientation[side1.axis] = normal_orient

        bi = BoundaryInterface(ps1, ps2, dir_map, orientation)
        self._owner[ps1] = self._owner[ps2] = len(self._interfaces)
        self._interfaces.append(bi)
        return bi

    def add_boundary(self, p, s):
        ps = PatchSide(p, BoxSide.parse(s, self.dim))
        self._check_free(ps)
        self._owner[ps] = None
        self._boundaries.append(ps)

    def add_auto_boundaries(self):
        """Declare all sides which are not yet matched as outer boundary."""
        for ps in self.sides():
            if ps not in self._owner:
                self.add_boundary(ps.patch, ps.side)

    def is_interface(self, ps):
        return self._owner.get(ps, None) is not None

    def is_boundary(self, ps):
        return ps in self._owner and self._owner[ps] is None

    def find_interface(self, ps):
        """Return the interface containing `ps`, oriented such that `ps` is
        its first side, or None if the side is not on an interface."""
        i = self._owner.get(ps, None)
        if i is None:
            return None
        bi = self._interfaces[i]
        return bi if bi.first == ps else bi.inverse()

    def check_consistency(self):
        """Every side must belong to exactly one interface or the boundary."""
        seen = dict()
        for bi in self._interfaces:
            for ps in (bi.first, bi.second):
                seen[ps] = seen.get(ps, 0) + 1
        for ps in self._boundaries:
            seen[ps] = seen.get(ps, 0) + 1
        for ps in self.sides():
            n = seen.get(ps, 0)
            if n != 1:
                raise TopologyError('side %s of patch %d occurs %d times in the topology'
                        % (ps.side.name, ps.patch, n))
        return True

    def patch_graph(self):
        """Connectivity graph of the patches as a :class:`networkx.Graph`."""
        import networkx as nx
        G = nx.Graph()
        G.add_nodes_from(range(self._num_boxes))
        G.add_edges_from((bi.first.patch, bi.second.patch) for bi in self._interfaces)
        return G

    def is_connected(self):
        import networkx as nx
        if self._num_boxes == 0:
            return True
        return nx.is_connected(self.patch_graph())

    def detect_interfaces(self, geos, grid=4):
        """Find matching sides of the geometry patches `geos` and add them as
        interfaces. Returns the list of added interfaces."""
        if len(geos) != self._num_boxes:
            raise TopologyError('expected %d geometries, got %d' % (self._num_boxes, len(geos)))
        added = []
        for (p1, s1, p2, s2, dir_map, orient) in detect_interfaces(geos, grid=grid):
            ps1, ps2 = PatchSide(p1, s1), PatchSide(p2, s2)
            if ps1 in self._owner or ps2 in self._owner:
                continue
            added.append(self.add_interface(p1, s1, p2, s2, dir_map=dir_map, orientation=orient))
        return added

    @classmethod
    def from_geometries(cls, geos, grid=4):
        """Build the topology of the given patches, with all unmatched sides
        declared as boundary."""
        T = cls(geos[0].sdim, len(geos))
        T.detect_interfaces(geos, grid=grid)
        T.add_auto_boundaries()
        return T

################################################################################
# Automatic interface detection
################################################################################

def _bb_rect(geo):
    bb = geo.bounding_box()
    return scipy.spatial.Rectangle(
        tuple(bb_i[0] for bb_i in bb),
        tuple(bb_i[1] for bb_i in bb))

def _side_grid(geo, side, grid):
    supp = geo.support
    axes = [np.linspace(s[0], s[1], grid) for s in supp]
    axes[side.axis] = np.array([supp[side.axis][side.param]])
    return np.array(list(it.product(*axes)))

def _check_side_match(G1, s1, G2, s2, grid):
    # try all maps of the tangential axes together with all possible flips
    dim = G1.sdim
    X = _side_grid(G1, s1, grid)
    Y1 = G1.pointwise_eval(X)
    scale = max(1.0, np.abs(Y1).max())
    tang1 = [k for k in range(dim) if k != s1.axis]
    tang2 = [k for k in range(dim) if k != s2.axis]
    for perm in it.permutations(tang2):
        dir_map = dim * [0]
        dir_map[s1.axis] = s2.axis
        for a, b in zip(tang1, perm):
            dir_map[a] = b
        for flips in it.product(*(len(tang1) * [(False, True)])):
            orient = dim * [True]
            orient[s1.axis] = (s1.param != s2.param)
            for a, f in zip(tang1, flips):
                orient[a] = not f
            bi = BoundaryInterface(PatchSide(0, s1), PatchSide(1, s2), dir_map, orient)
            Y2 = G2.pointwise_eval(bi.map_points(X, G1.support, G2.support))
            if np.allclose(Y1, Y2, atol=1e-10 * scale):
                return True, (dir_map, orient)
    return False, (None, None)

def detect_interfaces(geos, grid=4):
    """Automatically detect matching interfaces between geometry patches.

    Args:
        geos: a list of :class:`.BSplineFunc` geometries

    Returns:
        A list of tuples `(p1, side1, p2, side2, dir_map, orientation)`
        describing conforming interfaces.
    """
    interfaces = []
    bbs = [_bb_rect(geo) for geo in geos]
    diams = [bb.max_distance_rectangle(bb) for bb in bbs]
    for p1 in range(len(geos)):
        for p2 in range(p1 + 1, len(geos)):
            G1, G2 = geos[p1], geos[p2]
            if G1.sdim != G2.sdim or G1.dim != G2.dim:
                continue
            mindist = bbs[p1].min_distance_rectangle(bbs[p2])
            maxdiam = max(diams[p1], diams[p2])
            if mindist < 1e-10 * maxdiam:    # do the bounding boxes touch?
                for s1 in BoxSide.all(G1.sdim):
                    for s2 in BoxSide.all(G2.sdim):
                        match, (dir_map, orient) = _check_side_match(G1, s1, G2, s2, grid)
                        if match:
                            interfaces.append((p1, s1, p2, s2, dir_map, orient))
    return interfaces
