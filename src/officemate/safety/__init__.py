"""Rider safety features."""

from officemate.safety.service import SafetyService

__all__ = ["SafetyService"]
