"""Exceptions raised by the multipatch and assembly routines.

All of them signal deterministic structural problems; none of them is
expected to go away when an operation is simply retried.
"""

class TopologyError(ValueError):
    """The patch topology is malformed (unknown patch, side matched twice, ...)."""

class DimensionError(ValueError):
    """Bases, geometries or points of incompatible dimensions were combined."""

class MeshMismatchError(RuntimeError):
    """The two sides of an interface do not describe the same index range."""

class UnsupportedError(NotImplementedError):
    """The requested operation is not available for this configuration."""

class EmptyCollectionError(ValueError):
    """A query was made on a collection which does not contain any entries."""

class MapperFinalizedError(RuntimeError):
    """A finalized :class:`.DofMapper` was modified."""
