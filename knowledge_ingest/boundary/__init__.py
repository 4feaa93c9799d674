"""
Boundary layer: relational document registry and vector index adapters.
"""
