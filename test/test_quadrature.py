from mpiga.quadrature import *
from mpiga.topology import BoxSide

def test_gauss_rule():
    # 3 nodes integrate polynomials up to degree 5 exactly
    nodes, weights = gauss_rule(3, [0.0, 1.0], [1.0, 3.0])
    assert nodes.shape == weights.shape == (6,)
    assert np.isclose(weights.sum(), 3.0)
    assert np.isclose(weights.dot(nodes**5), 3.0**6 / 6)

def test_tensor_quadrature():
    meshes = (np.linspace(0.0, 1.0, 3), np.linspace(0.0, 2.0, 4))
    grid, weights = make_tensor_quadrature(meshes, 2)
    assert [len(g) for g in grid] == [4, 6]
    assert [len(w) for w in weights] == [4, 6]
    # int_0^1 int_0^2 x^3 y^2 dy dx = 1/4 * 8/3
    val = weights[0].dot(grid[0]**3) * weights[1].dot(grid[1]**2)
    assert np.isclose(val, 2.0 / 3.0)

def test_gaussrule():
    rule = GaussRule((2, 3))
    assert rule.num_nodes == 6
    nodes, weights = rule.map_to([1.0, 0.0], [2.0, 0.5])
    assert nodes.shape == (6, 2)
    assert np.isclose(weights.sum(), 0.5)
    # nodes are ordered with the last axis varying fastest
    assert np.allclose(nodes[:3, 0], nodes[0, 0])
    assert np.isclose(weights.dot(nodes[:, 0] * nodes[:, 1]**4), 1.5 * 0.5**5 / 5)

def test_gaussrule_boundary():
    rule = GaussRule((2, 3)).boundary(BoxSide.parse('north', 2))
    assert rule.num_nodes == 2
    nodes, weights = rule.map_to([0.0, 0.0], [0.5, 0.25])
    assert np.allclose(nodes[:, 1], 0.25)
    assert np.isclose(weights.sum(), 0.5)
