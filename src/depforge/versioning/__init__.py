"""Coordinates, versions and version ranges."""

from .models import ModuleId, RangeKind, Version, VersionedModule, VersionRange
from .parser import Coordinate, parse_coordinate

__all__ = [
    "Coordinate",
    "ModuleId",
    "RangeKind",
    "Version",
    "VersionedModule",
    "VersionRange",
    "parse_coordinate",
]
