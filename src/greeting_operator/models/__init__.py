"""Pydantic models for all CRDs."""

# Import all models to ensure they're registered
from . import greeting

__all__ = ["greeting"]
