from mpiga.system import *
from mpiga.dofmapper import DofMapper

import pytest

def _mapper():
    m = DofMapper([3])
    m.mark_boundary(0, [2])
    return m.finalize()

def test_push():
    m = _mapper()
    S = SparseSystem(m)
    assert S.shape == (2, 2)
    M = np.array([[2.0, -1.0, 0.0],
                  [-1.0, 2.0, -1.0],
                  [0.0, -1.0, 2.0]])
    gl = S.map_col_indices(np.arange(3), 0)
    S.push(M, np.ones(3), gl, eliminated=np.array([4.0]))
    assert np.allclose(S.matrix().toarray(), [[2.0, -1.0], [-1.0, 2.0]])
    # the eliminated column moves to the right-hand side
    assert np.allclose(S.rhs(), [1.0, 1.0 + 4.0])

def test_accumulate():
    m = DofMapper([2, 2])
    m.match_dofs(0, [1], 1, [0])
    m.finalize()
    S = SparseSystem(m)
    K = np.array([[1.0, -1.0], [-1.0, 1.0]])
    for p in range(2):
        S.push(K, np.array([0.5, 0.5]), S.map_col_indices([0, 1], p), np.zeros(0))
    assert np.allclose(S.matrix().toarray(),
            [[1.0, -1.0, 0.0], [-1.0, 2.0, -1.0], [0.0, -1.0, 1.0]])
    assert np.allclose(S.rhs(), [0.5, 1.0, 0.5])
    S.push_rhs(np.array([1.0, 1.0]), S.map_row_indices([0, 1], 1))
    assert np.allclose(S.rhs(), [0.5, 2.0, 1.5])
    S.set_zero()
    assert S.matrix().nnz == 0
    assert np.allclose(S.rhs(), 0.0)

def test_blocks():
    m1, m2 = _mapper(), DofMapper([2]).finalize()
    S = SparseSystem([m1, m2])
    assert S.shape == (4, 4)
    S.push(np.eye(2), None, S.map_col_indices([0, 1], 0, c=1), np.zeros(0), r=1, c=1)
    assert np.allclose(S.matrix().toarray()[2:, 2:], np.eye(2))

def test_requires_finalized():
    with pytest.raises(RuntimeError):
        SparseSystem(DofMapper([2]))
