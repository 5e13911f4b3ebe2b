"""
TractExemplar

Representative exemplar streamlines for structural connectome edges.
"""

__version__ = "0.1.0"
