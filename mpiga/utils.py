import numpy as np
import scipy.sparse

def multi_kron_sparse(As, format='csr'):
    """Compute the (sparse) Kronecker product of a sequence of sparse matrices."""
    if len(As) == 1:
        return As[0].asformat(format, copy=True)
    else:
        return scipy.sparse.kron(As[0], multi_kron_sparse(As[1:], format=format), format=format)

def cartesian_product(arrays):
    """Compute the Cartesian product of any number of input arrays."""
    L = len(arrays)
    shp = tuple(a.shape[0] for a in arrays)
    arr = np.empty(shp + (L,), dtype=arrays[0].dtype)
    for i in range(L):
        # broadcast the i-th array along all but the i-th axis
        ix = L * [np.newaxis]
        ix[i] = slice(shp[i])
        arr[..., i] = arrays[i][tuple(ix)]
    arr.shape = (-1, L)
    return arr

def tensor_columns(factors):
    """Given per-axis tables `factors[k]` of shape `(n_k, m)`, return the
    table of shape `(n_1 * ... * n_d, m)` containing their columnwise
    tensor products, with rows in C (lexicographic) order.
    """
    out = factors[0]
    for f in factors[1:]:
        out = (out[:, np.newaxis, :] * f[np.newaxis, :, :]).reshape((-1, f.shape[1]))
    return out

def as_points(x, dim=None):
    """Convert `x` into a float array of shape `(n, dim)`; a single point may
    be given as a flat sequence.
    """
    x = np.asarray(x, dtype=float)
    if x.ndim == 1:
        x = x.reshape((1, -1)) if dim is None or x.shape[0] == dim else x.reshape((-1, 1))
    if dim is not None and x.shape[1] != dim:
        raise ValueError('points have dimension %d, expected %d' % (x.shape[1], dim))
    return x


def _noop(self, *args, **kwargs): pass
class _DummyPbar:
    """No-op stand-in for tqdm."""
    def __init__(self, *args, **kwags):
        if len(args) > 0:
            self.r = args[0]
    def __iter__(self):
        return iter(self.r)
    def __enter__(self):
        return self
    __exit__ = _noop
    update   = _noop
    close    = _noop
    set_postfix = _noop

def progress_bar(enable=True):
    if enable:
        import tqdm
        return tqdm.tqdm
    else:
        return _DummyPbar
