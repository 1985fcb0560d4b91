"""Declarative onboarding for BIG-IP devices."""

__version__ = "0.1.0"
