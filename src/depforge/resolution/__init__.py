"""Transitive dependency resolution."""

from .models import ResolutionResult, UnresolvedModule
from .resolver import CancellationToken, Resolver, resolve

__all__ = [
    "CancellationToken",
    "ResolutionResult",
    "Resolver",
    "UnresolvedModule",
    "resolve",
]
