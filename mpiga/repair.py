"""Repair of interfaces between hierarchically refined patches.

Two patches sharing an interface are refined independently, so the
partitions which their active cells induce on the common side generally
differ. The functions in this module compare both partitions and compute
the boxes by which the coarser side has to be refined such that, wherever
the two sides overlap, both have the same refinement level.

All computations use integer cell coordinates. The coordinates of both
sides are brought to a common level (the finer of the two index levels)
and the boxes of the second side are expressed in the axes of the first
side before comparing them. Refinement boxes are returned in the
`[level, lo_1, ..., lo_d, up_1, ..., up_d]` format accepted by
:meth:`.HSpace.refine_elements`, in cell coordinates of `level` and in the
axes of the patch they refine.
"""
import numpy as np

from .errors import MeshMismatchError, UnsupportedError
from .levels import LevelIndex, reflect, rescale


def side_boxes_at_level(tree, side, level):
    """Active cells of `tree` on `side` as `(lo, up, levels)`, with the
    corners given on the grid of `level`."""
    lo, up, levels = tree.boxes_on_side(side)
    M = tree.max_inserted_level
    return rescale(lo, M, level), rescale(up, M, level), levels

def upper_corner_at_level(tree, level):
    return rescale(tree.upper_corner(), tree.index_level, level)

def remap_to_first(bi, lo2, up2, upper2):
    """Express boxes given in the axes of the second patch of `bi` in the
    axes of the first patch. Reversed axes are mirrored within `upper2`."""
    lo = np.empty_like(lo2)
    up = np.empty_like(up2)
    for k in range(bi.dim):
        j = bi.dir_map[k]
        if bi.dir_orientation[k] or k == bi.first.side.axis:
            lo[:, k], up[:, k] = lo2[:, j], up2[:, j]
        else:
            lo[:, k], up[:, k] = reflect(lo2[:, j], up2[:, j], upper2[j])
    return lo, up

def map_back_to_second(bi, lo, up, upper2):
    """Inverse of :func:`remap_to_first` for the tangential axes; the normal
    coordinates of the result are left at zero."""
    lo2 = np.zeros_like(lo)
    up2 = np.zeros_like(up)
    for k in bi.tangential_axes():
        j = bi.dir_map[k]
        if bi.dir_orientation[k]:
            lo2[..., j], up2[..., j] = lo[..., k], up[..., k]
        else:
            lo2[..., j], up2[..., j] = reflect(lo[..., k], up[..., k], upper2[j])
    return lo2, up2

def _check_extents(bi, upper1, upper2):
    for k in bi.tangential_axes():
        j = bi.dir_map[k]
        if upper1[k] != upper2[j]:
            raise MeshMismatchError('meshes are not matching as they should be: '
                    'interface %s has %d cells on the first and %d on the second side'
                    % (bi, upper1[k], upper2[j]))

def _make_box(side, level, lo, up, upper, use):
    """Box on `level` covering the tangential extent `[lo, up)` (given on
    the grid of `use`) and the layer of cells adjacent to `side`."""
    lo = rescale(lo, use, level)
    up = rescale(up, use, level)
    n = LevelIndex(upper[side.axis], use).at_level(level).value
    lo[side.axis], up[side.axis] = (0, 1) if side.is_low else (n - 1, n)
    return [int(level)] + [int(v) for v in lo] + [int(v) for v in up]

def _refinement_box(bi, L0, L1, lo, up, upper1, upper2, use, boxes1, boxes2):
    """Record the box for the overlap `[lo, up)` (axes of the first side)
    whose levels are `L0` and `L1` on the first and second side."""
    if L0 == L1:
        return
    level = max(L0, L1)
    if L0 < L1:
        boxes1.append(_make_box(bi.first.side, level, lo, up, upper1, use))
    else:
        lo2, up2 = map_back_to_second(bi, np.asarray(lo), np.asarray(up), upper2)
        boxes2.append(_make_box(bi.second.side, level, lo2, up2, upper2, use))


def find_refinement_boxes(bi, tree1, tree2):
    """Compare all pairs of active cells on both sides of `bi` and return the
    boxes `(boxes1, boxes2)` by which the two patches must be refined.

    Works in any dimension.
    """
    s1, s2 = bi.first.side, bi.second.side
    use = max(tree1.index_level, tree2.index_level)
    upper1 = upper_corner_at_level(tree1, use)
    upper2 = upper_corner_at_level(tree2, use)
    _check_extents(bi, upper1, upper2)

    lo1, up1, lev1 = side_boxes_at_level(tree1, s1, use)
    lo2, up2, lev2 = side_boxes_at_level(tree2, s2, use)
    lo2, up2 = remap_to_first(bi, lo2, up2, upper2)

    tang = bi.tangential_axes()
    boxes1, boxes2 = [], []
    for a in range(lo1.shape[0]):
        for b in range(lo2.shape[0]):
            lo = np.maximum(lo1[a], lo2[b])
            up = np.minimum(up1[a], up2[b])
            if all(lo[k] < up[k] for k in tang):
                _refinement_box(bi, lev1[a], lev2[b], lo, up, upper1, upper2, use,
                        boxes1, boxes2)
    return boxes1, boxes2


def _side_intervals(lo, up, levels, axis):
    """Rows `(start, end, level)` along `axis`, sorted by start."""
    rows = np.stack((lo[:, axis], up[:, axis], levels), axis=1)
    return rows[np.argsort(rows[:, 0], kind='stable')]

def find_refinement_boxes_2d(bi, tree1, tree2):
    """Same as :func:`find_refinement_boxes`, but for sides of 2D patches.

    Both sides are linearized into sorted intervals along the tangential
    direction which are then merged in a single pass.
    """
    if bi.dim != 2:
        raise UnsupportedError('3D not implemented')
    s1, s2 = bi.first.side, bi.second.side
    t1 = (s1.direction + 1) % 2
    t2 = (s2.direction + 1) % 2
    orient = bi.dir_orientation[t1]

    use = max(tree1.index_level, tree2.index_level)
    upper1 = upper_corner_at_level(tree1, use)
    upper2 = upper_corner_at_level(tree2, use)
    _check_extents(bi, upper1, upper2)

    lo1, up1, lev1 = side_boxes_at_level(tree1, s1, use)
    lo2, up2, lev2 = side_boxes_at_level(tree2, s2, use)
    intfc1 = _side_intervals(lo1, up1, lev1, t1)
    if not orient:
        lo2, up2 = lo2.copy(), up2.copy()
        lo2[:, t2], up2[:, t2] = reflect(lo2[:, t2], up2[:, t2], upper2[t2])
    intfc2 = _side_intervals(lo2, up2, lev2, t2)

    if intfc1[-1, 1] != intfc2[-1, 1]:
        raise MeshMismatchError('meshes are not matching as they should be: '
                'sides end at %d and %d' % (intfc1[-1, 1], intfc2[-1, 1]))

    # merge the end points of both partitions
    merged = []
    i = j = 0
    while i < len(intfc1) and j < len(intfc2):
        end = min(intfc1[i, 1], intfc2[j, 1])
        merged.append((end, intfc1[i, 2], intfc2[j, 2]))
        if intfc1[i, 1] == end:
            i += 1
        if intfc2[j, 1] == end:
            j += 1

    boxes1, boxes2 = [], []
    start = 0
    for (end, L0, L1) in merged:
        lo = np.zeros(2, dtype=np.int64)
        up = np.zeros(2, dtype=np.int64)
        lo[t1], up[t1] = start, end
        _refinement_box(bi, L0, L1, lo, up, upper1, upper2, use, boxes1, boxes2)
        start = end
    return boxes1, boxes2


def repair_interface(bi, basis1, basis2, fast=False):
    """Refine the two bases adjacent to the interface `bi` once so that their
    refinement levels agree where the sides overlap.

    Args:
        bi (:class:`.BoundaryInterface`): the interface
        basis1, basis2: the bases of the first and second patch of `bi`;
            both must be hierarchical
        fast (bool): use the 2D interval merge instead of comparing all pairs

    Returns:
        bool: True if any refinement was necessary
    """
    tree1, tree2 = basis1.hierarchical_tree(), basis2.hierarchical_tree()
    if tree1 is None or tree2 is None:
        raise UnsupportedError('interface repair requires hierarchical bases')
    if bi.dim not in (2, 3):
        raise UnsupportedError('interface repair is only implemented in 2D and 3D')
    finder = find_refinement_boxes_2d if fast else find_refinement_boxes
    boxes1, boxes2 = finder(bi, tree1, tree2)
    if boxes1:
        basis1.refine_elements(np.concatenate(boxes1))
    if boxes2:
        basis2.refine_elements(np.concatenate(boxes2))
    return bool(boxes1 or boxes2)
