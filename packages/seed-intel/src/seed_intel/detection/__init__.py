"""Architecture, domain and framework detection."""

from seed_intel.detection.architecture import ArchitectureClassifier
from seed_intel.detection.domain import DomainClassifier
from seed_intel.detection.framework import FrameworkDetector, MakerKitDetector
from seed_intel.detection.integrator import DetectionIntegrator

__all__ = [
    "ArchitectureClassifier",
    "DomainClassifier",
    "FrameworkDetector",
    "MakerKitDetector",
    "DetectionIntegrator",
]
