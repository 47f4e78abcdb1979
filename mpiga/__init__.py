"""mpiga

Multipatch hierarchical Isogeometric Analysis: interface matching and repair
for hierarchical spline bases, and element assembly into global sparse
systems.
"""

__version__ = '0.1.0'
