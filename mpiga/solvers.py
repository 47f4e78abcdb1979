"""Solvers for the assembled linear systems."""
import numpy as np
import scipy.sparse
import scipy.sparse.linalg


class NoConvergenceError(Exception):
    def __init__(self, method, num_iter, last_iterate):
        super().__init__('%s did not converge within %d iterations' % (method, num_iter))
        self.method = method
        self.num_iter = num_iter
        self.last_iterate = last_iterate


def _as_operator(A):
    if callable(A):
        return A
    return lambda x: A @ x

def solve(system, method='direct', **kwargs):
    """Solve an assembled :class:`.SparseSystem`.

    Args:
        system: the assembled system
        method (string): ``"direct"`` for a sparse LU factorization or
            ``"cg"`` for the conjugate gradient method (symmetric positive
            definite matrices only); further keyword arguments are passed
            to :func:`cg`

    Returns:
        ndarray: the vector of free dof values
    """
    A, f = system.matrix(), system.rhs()
    if A.shape[0] == 0:
        return np.zeros(0)
    if method == 'direct':
        return np.atleast_1d(scipy.sparse.linalg.spsolve(A.tocsc(), f))
    elif method == 'cg':
        return cg(A, f, **kwargs)[0]
    else:
        raise ValueError('unknown solution method %r' % (method,))

def cg(A, f, x0=None, P=None, rtol=1e-10, atol=0.0, maxiter=1000):
    """Solve the linear system `Ax = f` by the preconditioned conjugate
    gradient method.

    Args:
        A (LinearOperator or ndarray or sparse matrix): the symmetric and
            positive definite matrix of the linear system
        f (ndarray): the right-hand side vector
        x0 (ndarray): initial guess, by default the zero vector
        P: preconditioner (matrix or function); by default the identity
        rtol (float), atol (float): the iteration stops once the
            preconditioned residual norm drops below `rtol` times its initial
            value or below `atol`
        maxiter (int): maximum number of iterations

    Returns:
        `(x, num_iter)`

    Raises:
        NoConvergenceError: if the tolerance was not reached within `maxiter` steps
    """
    maxiter = int(maxiter)
    Afun = _as_operator(A)
    Pfun = (lambda x: x) if P is None else _as_operator(P)
    f_ = np.asarray(f, dtype=float).ravel()
    x = np.zeros(len(f_)) if x0 is None else np.array(x0, dtype=float).ravel()
    if P is not None and not callable(P) and P.shape != 2 * (len(f_),):
        raise ValueError('preconditioner has shape %s, expected %s' % (P.shape, 2 * (len(f_),)))

    r = f_ - Afun(x)
    h = Pfun(r)
    rho = h @ r
    err0 = np.sqrt(abs(Pfun(f_) @ f_))
    target = max(rtol * err0, atol)
    if np.sqrt(abs(rho)) <= target:
        return x, 0

    d = h.copy()
    for it in range(maxiter):
        z = Afun(d)
        alpha = rho / (z @ d)
        x += alpha * d
        r -= alpha * z
        h = Pfun(r)
        rho_old, rho = rho, h @ r
        if np.sqrt(abs(rho)) <= target:
            return x, it + 1
        d = h + (rho / rho_old) * d
    raise NoConvergenceError('cg', maxiter, x)
