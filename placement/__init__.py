"""Lifecycle and entitlement engine for the placement marketplace."""

__version__ = "1.0.0"
