"""
Shared utilities for time-series handling.

Modules
-------
values
    Classification of untyped upstream values and their numeric coercion
validation
    Float validation used when serializing numeric series to JSON
"""

__all__ = []
