"""CRD management system for the greeting operator."""

from .registry import CRDRegistry
from .base import CRDSpec, CRDStatus

__all__ = ["CRDRegistry", "CRDSpec", "CRDStatus"]
