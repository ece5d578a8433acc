"""Error types raised or recorded while planning C/C++ modules."""
from __future__ import annotations

from typing import Iterable, List


class PlanningError(ValueError):
    """Base class for errors attached to a single module variant."""

    def __init__(self, module: str, message: str, *, property_name: str | None = None) -> None:
        self.module = module
        self.property_name = property_name
        self.message = message
        if property_name:
            text = f"module '{module}': {property_name}: {message}"
        else:
            text = f"module '{module}': {message}"
        super().__init__(text)


class ConfigurationError(PlanningError):
    """Contradictory or disallowed module configuration."""


class CompatibilityError(PlanningError):
    """A dependency edge that cannot be honoured between two modules."""

    def __init__(self, module: str, other: str, message: str) -> None:
        super().__init__(module, message)
        self.other = other


class MissingDependencyError(PlanningError):
    """Dependencies that could not be found, reported by the final consumer."""

    def __init__(self, module: str, names: Iterable[str]) -> None:
        self.names: List[str] = list(names)
        super().__init__(module, "missing dependencies: " + ", ".join(self.names))


class DependencyCycleError(ValueError):
    """Raised by the module graph when the dependency edges form a cycle."""


__all__ = [
    "CompatibilityError",
    "ConfigurationError",
    "DependencyCycleError",
    "MissingDependencyError",
    "PlanningError",
]
