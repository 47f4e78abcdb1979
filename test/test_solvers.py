from mpiga.solvers import *

import pytest

def _spd(n=20, rng=None):
    X = (rng or np.random.RandomState(0)).rand(n, n)
    return X.dot(X.T) + n * np.eye(n)

class _System:
    def __init__(self, A, f):
        self.A, self.f = A, f
    def matrix(self):
        return self.A
    def rhs(self):
        return self.f

def test_cg():
    rng = np.random.RandomState(0)
    A = _spd(rng=rng)
    f = rng.rand(A.shape[0])
    x, it = cg(A, f, rtol=1e-12)
    assert np.allclose(A.dot(x), f)
    assert 0 < it <= A.shape[0] + 5
    # diagonal preconditioner, as a matrix and as a function
    D = np.diag(1.0 / np.diag(A))
    x2, _ = cg(A, f, P=D, rtol=1e-12)
    assert np.allclose(x, x2)
    x3, _ = cg(scipy.sparse.csr_matrix(A), f, P=lambda r: D.dot(r), rtol=1e-12)
    assert np.allclose(x, x3)
    # exact initial guess needs no iterations
    assert cg(A, f, x0=x, atol=1e-6)[1] == 0

def test_cg_noconvergence():
    A = _spd()
    f = np.random.RandomState(1).rand(A.shape[0])
    with pytest.raises(NoConvergenceError) as exc:
        cg(A, f, maxiter=1)
    assert exc.value.method == 'cg'
    assert exc.value.num_iter == 1
    assert exc.value.last_iterate.shape == f.shape
    with pytest.raises(ValueError):
        cg(A, f, P=np.eye(3))

def test_solve():
    A = _spd(10)
    f = np.random.RandomState(1).rand(10)
    S = _System(scipy.sparse.csr_matrix(A), f)
    x = solve(S)
    assert np.allclose(A.dot(x), f)
    assert np.allclose(solve(S, method='cg', rtol=1e-12), x)
    assert solve(_System(scipy.sparse.csr_matrix((0, 0)), np.zeros(0))).shape == (0,)
    with pytest.raises(ValueError):
        solve(S, method='gmres')

def test_cg_two_eigenvalues():
    # CG terminates after as many steps as A has distinct eigenvalues
    rng = np.random.RandomState(2)
    Q = np.linalg.qr(rng.rand(12, 12))[0]
    A = Q.dot(np.diag(6 * [1.0] + 6 * [3.0])).dot(Q.T)
    f = rng.rand(12)
    x, it = cg(A, f, rtol=1e-10)
    assert np.allclose(A.dot(x), f)
    assert it <= 2
