from mpiga.hierarchical import *
from mpiga import bspline
from mpiga.topology import BoxTopology, BoxSide

import pytest

def _make_hs(p=3, n=3, truncate=False):
    kv = bspline.make_knots(p, 0.0, 1.0, n)
    return HSpace((kv, kv), truncate=truncate)

def _refined_example(truncate=False):
    hs = _make_hs(truncate=truncate)
    hs.refine({ 0: [(0,0),(0,1),(1,0),(1,1),(0,2)] })
    hs.refine({ 1: [(0,0),(0,1),(2,0),(1,0),(1,1)] })
    return hs

def test_hspace():
    hs = _make_hs()
    assert hs.numlevels == 1
    assert tuple(len(a) for a in hs.actfun) == (36,)
    assert tuple(len(a) for a in hs.deactfun) == (0,)

    hs = _refined_example()
    assert hs.numlevels == 3
    assert tuple(len(a) for a in hs.actfun) == (28, 21, 20)
    assert tuple(len(a) for a in hs.deactfun) == (8, 5, 0)
    assert hs.numactive == (28, 21, 20)
    assert hs.numdofs == hs.size == 28 + 21 + 20
    assert hs.total_active_cells == 39
    assert len(list(hs.elements())) == 39

    # representation of THB-splines on the fine level
    R = hs.represent_fine(truncate=True)
    assert R.shape == (225, 28+21+20)
    assert np.allclose(R.sum(axis=1), 1.0)

def test_canonical_index():
    hs = _refined_example()
    funcs = hs.active_functions(flat=True)
    for i in (0, 27, 28, 50, 68):
        assert hs.canonical_index(*funcs[i]) == i
    assert hs.canonical_index(0, (0, 0)) is None    # deactivated

def test_cellextents():
    hs = _make_hs(p=2, n=2)
    hs.refine_region(0, lambda *X: True)    # refine globally
    assert hs.numlevels == 2
    assert np.array_equal(
            hs.cell_extents(0, (1,0)),
            ((0.5,1.0), (0.0, 0.5)))
    assert np.array_equal(
            hs.cell_extents(1, (2,1)),
            ((0.5,0.75), (0.25, 0.5)))

def test_partition_of_unity():
    hs = _refined_example(truncate=True)
    X = np.random.RandomState(0).rand(20, 2)
    E = hs.eval_matrix(X)
    assert E.shape == (20, hs.numdofs)
    assert np.allclose(E.sum(axis=1), 1.0)

@pytest.mark.parametrize('truncate', [False, True])
def test_evaluation(truncate):
    hs = _refined_example(truncate=truncate)
    c = np.random.RandomState(0).rand(hs.numdofs)
    # evaluate the same function in the tensor product space of the finest level
    u_fine = bspline.BSplineFunc(hs.knotvectors(hs.numlevels - 1), hs.represent_fine().dot(c))
    X = np.random.RandomState(0).rand(15, 2)
    assert np.allclose(hs.eval_matrix(X).dot(c), u_fine.pointwise_eval(X))
    # derivatives, elementwise
    for el in list(hs.elements())[::7]:
        Y = el.lower + np.random.RandomState(0).rand(3, 2) * (el.upper - el.lower)
        act = hs.active(Y[0], el)
        vals, grads = hs.eval_all_ders(Y, 1, el)
        assert np.allclose(c[act].dot(vals), u_fine.pointwise_eval(Y))
        assert np.allclose(np.einsum('i,iqd->qd', c[act], grads),
                u_fine.pointwise_jacobian(Y)[:, 0, :])

def test_locate():
    hs = _refined_example()
    el = hs.locate([0.05, 0.05])
    assert el.level == 2
    el = hs.locate([0.9, 0.9])
    assert el.level == 0 and el.cell == (2, 2)
    assert np.allclose(el.lower, [2/3, 2/3])

def test_refine_elements():
    hs = _make_hs(p=2, n=4)
    assert hs.refine_elements([1, 1, 1, 3, 3])
    assert hs.active_cells(0) == set(hs.mesh(0).cells()) - {(0,0), (0,1), (1,0), (1,1)}
    assert len(hs.active_cells(1)) == 16
    # already fine enough
    assert not hs.refine_elements([1, 0, 0, 4, 4])
    # two boxes at once, one of them on level 2
    assert hs.refine_elements([[1, 6, 6, 8, 8], [2, 0, 0, 1, 1]])
    assert (3, 3) not in hs.active_cells(0)
    assert (0, 0) in hs.active_cells(2)

def test_domain_tree():
    hs = _make_hs(p=2, n=4)
    hs.refine_elements([1, 0, 0, 2, 2])
    tree = hs.hierarchical_tree()
    assert tree.index_level == 1
    assert tree.max_inserted_level == 1
    assert np.array_equal(tree.upper_corner(), [8, 8])
    lo, up, levels = tree.boxes_on_side(BoxSide(0, 0))
    order = np.argsort(lo[:, 1])
    assert np.array_equal(lo[order, 1], [0, 1, 2, 4, 6])
    assert np.array_equal(up[order, 1], [1, 2, 4, 6, 8])
    assert np.array_equal(levels[order], [1, 1, 0, 0, 0])
    assert np.all(lo[:, 0] == 0)

def test_boundary():
    hs = _make_hs(p=2, n=2)
    assert np.array_equal(hs.boundary(BoxSide(0, 0)), [0, 1, 2, 3])
    anchors = hs.boundary_anchors(BoxSide(1, 1))
    assert np.allclose(anchors[:, 1], 1.0)
    assert np.allclose(anchors[:, 0], [0.0, 0.25, 0.75, 1.0])

def test_match_conforming():
    hs1, hs2 = _make_hs(p=2, n=4), _make_hs(p=2, n=4)
    for hs in (hs1, hs2):
        hs.refine_region(0, lambda x, y: y < 0.5)
    bi = BoxTopology(2, 2).add_interface(0, 'east', 1, 'west')
    idx1, idx2 = hs1.match_with(bi, hs2)
    assert len(idx1) == len(hs1.boundary(BoxSide(0, 1)))
    assert np.array_equal(np.sort(idx2), np.sort(hs2.boundary(BoxSide(0, 0))))

def test_match_nonconforming():
    hs1, hs2 = _make_hs(p=2, n=4), _make_hs(p=2, n=4)
    hs1.refine_region(0, lambda x, y: x > 0.75)
    bi = BoxTopology(2, 2).add_interface(0, 'east', 1, 'west')
    with pytest.warns(RuntimeWarning):
        idx1, idx2 = hs1.match_with(bi, hs2)
    assert len(idx1) == len(idx2) == 0

def test_copy():
    hs = _make_hs(p=2, n=2)
    hs2 = hs.copy()
    hs2.uniform_refine()
    assert hs.numlevels == 1 and hs2.numlevels == 2
    assert hs2.total_active_cells == 16
