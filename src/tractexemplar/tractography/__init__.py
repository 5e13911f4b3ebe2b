"""
Tractography Module

Streamline I/O and measurement utilities.

Main components:
- StreamlineUtils: Length computation and TRK/TCK/HDF5 input and output
"""

from .streamline_utils import StreamlineUtils

__all__ = [
    'StreamlineUtils'
]
