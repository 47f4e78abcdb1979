# -*- coding: utf-8 -*-

from mpiga.bspline import *

def test_make_knots():
    kv = make_knots(2, 0.0, 1.0, 4)
    assert np.array_equal(kv.kv, [0, 0, 0, 0.25, 0.5, 0.75, 1, 1, 1])
    assert kv.numdofs == 6 and kv.numspans == 4
    assert numdofs((kv, make_knots(1, 0.0, 1.0, 2))) == 18

def test_partition_of_unity():
    kv = make_knots(3, 0.0, 1.0, 5)
    x = np.linspace(0.0, 1.0, 50)
    C = collocation(kv, x)
    assert np.allclose(C.sum(axis=1), 1.0)
    D = collocation_derivs(kv, x, derivs=2)
    assert np.allclose(D[1].sum(axis=1), 0.0)
    assert np.allclose(D[2].sum(axis=1), 0.0)

def test_greville():
    kv = make_knots(2, 0.0, 1.0, 2)
    assert np.allclose(kv.greville(), [0.0, 0.25, 0.75, 1.0])
    # linear functions are reproduced by their Greville coefficients
    x = np.linspace(0.0, 1.0, 20)
    assert np.allclose(collocation(kv, x).dot(kv.greville()), x)

def test_refine():
    kv = make_knots(2, 0.0, 1.0, 4)
    kv2 = kv.refine([0.1])
    assert kv2.p == kv.p and np.array_equal(kv2.kv,
            [0.0, 0.0, 0.0, 0.1, 0.25, 0.5, 0.75, 1.0, 1.0, 1.0])
    kv2 = kv.refine()
    assert kv2.p == kv.p and np.array_equal(kv2.kv, make_knots(2, 0.0, 1.0, 8).kv)

def test_prolongation():
    # create random spline
    kv = make_knots(3, 0.0, 1.0, 10)
    coeffs = np.random.RandomState(0).rand(kv.numdofs)
    # compute a refined knot vector and prolongation matrix
    kv2 = kv.refine()
    P = prolongation(kv, kv2)
    coeffs2 = P.dot(coeffs)
    # check that they evaluate to the same function
    x = np.linspace(0.0, 1.0, 100)
    val1 = collocation(kv, x).dot(coeffs)
    val2 = collocation(kv2, x).dot(coeffs2)
    assert np.linalg.norm(val1 - val2) < 1e-10

def test_mesh_span_indices():
    kv = make_knots(3, 0.0, 1.0, 4)
    assert np.array_equal(kv.mesh_span_indices(), [3, 4, 5, 6])
    kv = make_knots(3, 0.0, 1.0, 4, mult=3)
    assert np.array_equal(kv.mesh_span_indices(), [3, 6, 9, 12])

def test_findspan():
    kv = make_knots(2, 0.0, 1.0, 4)
    assert kv.findspan(0.0) == 2
    assert kv.findspan(0.3) == 3
    assert kv.findspan(1.0) == 5
    assert kv.first_active_at(0.3) == 1

def test_active_deriv():
    kv = make_knots(2, 0.0, 1.0, 1)
    # Bernstein polynomials of degree 2
    D = active_deriv(kv, 0.5, 3)
    assert np.allclose(D[0], [0.25, 0.5, 0.25])
    assert np.allclose(D[1], [-1.0, 0.0, 1.0])
    assert np.allclose(D[2], [2.0, -4.0, 2.0])
    assert np.allclose(D[3], 0.0)

def test_tp_active_ders():
    kvs = (make_knots(2, 0.0, 1.0, 2), make_knots(1, 0.0, 1.0, 3))
    spans = [kvs[0].findspan(0.7), kvs[1].findspan(0.1)]
    X = np.array([[0.6, 0.1], [0.9, 0.3]])
    idx, ders = tp_active_ders(kvs, spans, X, n=2)
    assert len(idx) == 3 * 2
    assert ders[0].shape == (6, 2)
    assert ders[1].shape == (6, 2, 2)
    assert ders[2].shape == (6, 2, 2, 2)
    assert np.allclose(ders[0].sum(axis=0), 1.0)
    assert np.allclose(ders[1].sum(axis=0), 0.0)
    # Hessians are symmetric
    assert np.allclose(ders[2], np.swapaxes(ders[2], 2, 3))

def test_bsplinefunc():
    kvs = 2 * (make_knots(2, 0.0, 1.0, 3),)
    g = [kv.greville() for kv in kvs]
    # u(x,y) = x + 2y has Greville coefficients
    coeffs = g[0][:, None] + 2 * g[1][None, :]
    u = BSplineFunc(kvs, coeffs)
    assert u.is_scalar()
    X = np.array([[0.1, 0.2], [0.5, 0.9], [1.0, 1.0]])
    assert np.allclose(u.pointwise_eval(X), X[:, 0] + 2 * X[:, 1])
    assert np.allclose(u.pointwise_jacobian(X), [[[1.0, 2.0]]] * 3)
    assert np.allclose(u.pointwise_hessian(X), 0.0)
    assert np.isclose(u(0.25, 0.5), 1.25)

def test_bsplinefunc_hessian():
    kv = make_knots(2, 0.0, 1.0, 1)
    # x^2 in the Bernstein basis
    u = BSplineFunc(kv, [0.0, 0.0, 1.0])
    X = np.array([[0.3], [0.8]])
    assert np.allclose(u.pointwise_eval(X), X[:, 0]**2)
    assert np.allclose(u.pointwise_hessian(X), 2.0)
