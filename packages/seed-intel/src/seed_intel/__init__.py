"""
seed-intel - Schema Intelligence & Constraint Discovery

Classifies a PostgreSQL schema (architecture and content domain), discovers
trigger-enforced business rules, orders tables by dependency and fixes
candidate rows so they satisfy known constraints.
"""

from seed_intel.config import Config
from seed_intel.constraints.discovery import ConstraintDiscoveryEngine
from seed_intel.constraints.graph import DependencyGraph
from seed_intel.constraints.handlers import (
    ConstraintHandler,
    ConstraintHandlerRegistry,
    clear_handlers,
    get_registry,
    list_handlers,
    register_handler,
)
from seed_intel.detection import (
    ArchitectureClassifier,
    DetectionIntegrator,
    DomainClassifier,
    MakerKitDetector,
)
from seed_intel.models import SchemaSnapshot

__version__ = "0.1.0"

__all__ = [
    "Config",
    "SchemaSnapshot",
    "ArchitectureClassifier",
    "DomainClassifier",
    "MakerKitDetector",
    "DetectionIntegrator",
    "ConstraintDiscoveryEngine",
    "DependencyGraph",
    "ConstraintHandler",
    "ConstraintHandlerRegistry",
    "register_handler",
    "list_handlers",
    "clear_handlers",
    "get_registry",
]
