from mpiga.assembler import *
from mpiga import bspline, geometry
from mpiga.bases import TensorBSplineBasis
from mpiga.hierarchical import HSpace
from mpiga.multibasis import MultiBasis
from mpiga.pde import CDRPde, BoundaryConditions

import pytest

def exact(x):
    return 1.0 + x[:, 0] + 2.0 * x[:, 1]

def _setup(basis_class=TensorBSplineBasis, p=2, n=2):
    geos = [geometry.unit_square(), geometry.unit_square().translate((1.0, 0.0))]
    kvs = 2 * (bspline.make_knots(p, 0.0, 1.0, n),)
    mb = MultiBasis.from_geometries([basis_class(kvs), basis_class(kvs)], geos)
    bc = BoundaryConditions()
    for ps in mb.topology.boundaries:
        bc.add_dirichlet(ps.patch, ps.side, exact)
    return mb, geos, bc

def _check_solution(asm, x, u):
    coeffs = asm.construct_solution(x)
    for p, (basis, geo) in enumerate(zip(asm.multibasis, asm.geos)):
        X = np.random.RandomState(0).rand(10, 2)
        vals = basis.eval_matrix(X).dot(coeffs[p])
        assert np.allclose(vals, u(geo.pointwise_eval(X)))

@pytest.mark.parametrize('method', ['l2', 'interpolation'])
def test_poisson_two_patches(method):
    mb, geos, bc = _setup()
    asm = Assembler(mb, geos, CDRPde(), bc, options={'DirichletValues': method})
    A = asm.matrix()
    assert asm.num_dofs == A.shape[0] == 4 + 4 + 2
    assert np.allclose((A - A.T).toarray(), 0.0)
    _check_solution(asm, asm.solve(), exact)
    # the conjugate gradient method gives the same result
    _check_solution(asm, asm.solve(method='cg'), exact)

def test_dirichlet_values():
    mb, geos, bc = _setup()
    asm = Assembler(mb, geos, CDRPde(), bc)
    asm.assemble()
    assert len(asm.eliminated_values) == asm.mapper.boundary_size == 28 - 10
    # linear boundary data is reproduced exactly by both methods
    vals = compute_dirichlet_values(mb, geos, bc, asm.mapper, method='interpolation')
    assert np.allclose(vals, asm.eliminated_values)
    with pytest.raises(ValueError):
        compute_dirichlet_values(mb, geos, bc, asm.mapper, method='nodal')

def test_poisson_hierarchical():
    mb, geos, bc = _setup(basis_class=HSpace, n=4)
    mb.refine_elements(0, [1, 6, 0, 8, 4])
    mb.repair_interfaces()
    asm = Assembler(mb, geos, CDRPde(), bc, options={'progress': True})
    _check_solution(asm, asm.solve(), exact)

def test_source_and_reaction():
    # u = 1 + x^2 solves -div grad u + u = x^2 - 1
    mb, geos, _ = _setup(p=2, n=2)
    u = lambda x: 1.0 + x[:, 0]**2
    bc = BoundaryConditions()
    for ps in mb.topology.boundaries:
        bc.add_dirichlet(ps.patch, ps.side, u)
    pde = CDRPde(reaction=1.0, rhs=lambda x: x[:, 0]**2 - 1.0)
    asm = Assembler(mb, geos, pde, bc, options={'quA': 2})
    _check_solution(asm, asm.solve(), u)

def test_neumann():
    geo = geometry.unit_square()
    mb = MultiBasis.from_basis(TensorBSplineBasis(2 * (bspline.make_knots(2, 0.0, 1.0, 3),)))
    bc = BoundaryConditions()
    bc.add_dirichlet(0, 'west', 0.0)
    bc.add_neumann(0, 'east', 1.0)
    asm = Assembler(mb, [geo], CDRPde(), bc)
    _check_solution(asm, asm.solve(), lambda x: x[:, 0])
    # patch 0 meets patch 1 on its east side
    mb2, geos2, bc2 = _setup()
    bc2.add_neumann(0, "east", 1.0)
    with pytest.raises(TopologyError):
        Assembler(mb2, geos2, CDRPde(), bc2).assemble()

def test_supg_without_convection():
    mb, geos, bc = _setup()
    A1 = Assembler(mb, geos, CDRPde(rhs=1.0), bc).matrix()
    asm = Assembler(mb, geos, CDRPde(rhs=1.0), bc, options={'Stabilization': 1})
    assert np.allclose(asm.matrix().toarray(), A1.toarray())

def test_convection_dominated():
    geos = [geometry.unit_square(), geometry.unit_square().translate((1.0, 0.0))]
    kvs = 2 * (bspline.make_knots(2, 0.0, 1.0, 4),)
    mb = MultiBasis.from_geometries([TensorBSplineBasis(kvs), TensorBSplineBasis(kvs)], geos)
    bc = BoundaryConditions()
    for ps in mb.topology.boundaries:
        bc.add_dirichlet(ps.patch, ps.side, 3.0)
    pde = CDRPde(diffusion=1e-4, convection=[1.0, 0.5])
    A0 = Assembler(mb, geos, pde, bc).matrix()
    asm = Assembler(mb, geos, pde, bc, options={"Stabilization": 1})
    A1 = asm.matrix()
    assert not np.allclose(A0.toarray(), A1.toarray())
    # constants are still reproduced
    _check_solution(asm, asm.solve(), lambda x: np.full(x.shape[0], 3.0))

def test_invalid():
    mb, geos, bc = _setup()
    with pytest.raises(ValueError):
        Assembler(mb, geos, CDRPde(), bc, options={'Stabilization': 3})
    with pytest.raises(ValueError):
        Assembler(mb, geos[:1], CDRPde(), bc)
    with pytest.raises(DimensionError):
        Assembler(mb, geos, CDRPde(dim=3), bc)
    with pytest.raises(ValueError):
        Assembler(mb, geos, CDRPde(), bc, options={'DirichletValues': 'exact'}).assemble()
