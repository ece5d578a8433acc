"""Build planning for C/C++ modules: variant expansion, dependency resolution and link plans."""
from __future__ import annotations

from .cli import main
from .config import ConfigurationStore, PlanConfig
from .planner import PlanResult, Planner
from .registry import ModuleTypeRegistry, default_registry

__all__ = [
    "ConfigurationStore",
    "ModuleTypeRegistry",
    "PlanConfig",
    "PlanResult",
    "Planner",
    "default_registry",
    "main",
]
