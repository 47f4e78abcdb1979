from mpiga.geometry import *
from mpiga.topology import BoxSide
from mpiga.errors import DimensionError

import pytest

def test_identity():
    geo = identity([(1.0, 3.0), (-1.0, 0.0)])
    assert geo.sdim == geo.dim == 2
    assert geo.support == ((1.0, 3.0), (-1.0, 0.0))
    X = np.array([[1.0, -1.0], [2.0, -0.5], [3.0, 0.0]])
    assert np.allclose(geo.pointwise_eval(X), X)
    assert np.allclose(geo.pointwise_jacobian(X), [np.eye(2)] * 3)

def test_unitsquare():
    geo = unit_square(num_intervals=3)
    X = np.random.RandomState(0).rand(5, 2)
    assert np.allclose(geo.pointwise_eval(X), X)
    assert geo.bounding_box() == ((0.0, 1.0), (0.0, 1.0))

def test_cube():
    geo = unit_cube()
    X = np.random.RandomState(0).rand(4, 3)
    assert np.allclose(geo.pointwise_eval(X), X)

def test_tensorproduct():
    G = tensor_product(line_segment(0.0, 2.0), line_segment(1.0, 3.0))
    assert np.allclose(G.pointwise_eval(np.array([[0.5, 0.5]])), [[1.0, 2.0]])

def test_translate_scale():
    geo = translate(unit_square(), (1.0, 2.0))
    assert np.allclose(geo.pointwise_eval(np.array([[0.0, 0.0]])), [[1.0, 2.0]])
    geo = scale(unit_square(), 3.0)
    assert np.allclose(geo.pointwise_eval(np.array([[1.0, 1.0]])), [[3.0, 3.0]])

def test_quarter_annulus():
    geo = bspline_quarter_annulus(1.0, 2.0)
    X = geo.pointwise_eval(np.array([[0.0, 0.0], [1.0, 1.0], [0.0, 1.0]]))
    assert np.allclose(X, [[1.0, 0.0], [0.0, 2.0], [2.0, 0.0]])

def test_evaluator():
    geo = scale(unit_square(), [2.0, 0.5])
    ge = GeometryEvaluator(geo)
    ge.evaluate_at(np.array([[0.5, 0.5], [0.25, 1.0]]))
    assert ge.num_points == 2
    assert np.allclose(ge.values(), [[1.0, 0.25], [0.5, 0.5]])
    assert np.isclose(ge.measure(0), 1.0)
    # gradients of phi(x,y) = x are (1, 0) in parameter space
    G = ge.transform_gradients(0, np.array([[1.0, 0.0], [0.0, 1.0]]))
    assert np.allclose(G, [[0.5, 0.0], [0.0, 2.0]])
    H = ge.transform_hessians(0, np.array([[[1.0, 0.0], [0.0, 1.0]]]))
    assert np.allclose(H, [[[0.25, 0.0], [0.0, 4.0]]])

def test_boundary_quantities():
    geo = scale(unit_square(), [2.0, 0.5])
    ge = GeometryEvaluator(geo).evaluate_at(np.array([[1.0, 0.5]]))
    # east side has length 0.5 in physical space, parameter length 1
    assert np.isclose(ge.boundary_measure(0, BoxSide(0, 1)), 0.5)
    assert np.isclose(ge.boundary_measure(0, BoxSide(1, 0)), 2.0)
    assert np.allclose(ge.outer_normal(0, BoxSide(0, 1)), [1.0, 0.0])
    assert np.allclose(ge.outer_normal(0, BoxSide(1, 0)), [0.0, -1.0])

def test_evaluator_dimension():
    with pytest.raises(DimensionError):
        GeometryEvaluator(line_segment([0.0, 0.0], [1.0, 1.0]))
