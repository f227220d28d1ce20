"""
Request classification.

Assigns every intercepted request to exactly one handling class. The
classifier is pure: no I/O and no cache access.
"""

from .classifier import RequestClassifier

__all__ = ["RequestClassifier"]
