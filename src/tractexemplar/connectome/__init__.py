"""
Connectome Module

Node assignment and exemplar streamline generation.

Main components:
- Exemplar: Per-edge weighted mean streamline, finalized to a fixed step size
- ExemplarGenerator: One exemplar per edge of a connectome
- ConnectomeBuilder: Endpoint-based node assignment and node centres of mass
"""

from .exemplar import (
    BISECTION_ITERATIONS,
    ENDPOINT_CONVERGE_FRACTION,
    MIN_RESOLUTION,
    ConnectomeStreamline,
    Exemplar,
    ExemplarError,
    InvalidStateError,
    NodeOrderMismatchError,
    NodePair,
    Orientation,
    classify_orientation,
    find_point_at_distance,
)
from .exemplar_generator import ExemplarGenerator
from .construct import ConnectomeBuilder, load_parcellation

__all__ = [
    'BISECTION_ITERATIONS',
    'ENDPOINT_CONVERGE_FRACTION',
    'MIN_RESOLUTION',
    'ConnectomeStreamline',
    'Exemplar',
    'ExemplarError',
    'InvalidStateError',
    'NodeOrderMismatchError',
    'NodePair',
    'Orientation',
    'classify_orientation',
    'find_point_at_distance',
    'ExemplarGenerator',
    'ConnectomeBuilder',
    'load_parcellation',
]
