"""
Exceptions raised by the reconciliation engine.

Only structural problems are raised. Per-forest matching and geocoding
failures are reported as diagnostics instead.
"""


class ReconcileError(Exception):
    """Base class for reconciliation errors."""


class EmptyInputError(ReconcileError):
    """Raised when the scraped input has nothing to reconcile."""


class ConfigurationError(ReconcileError, ValueError):
    """Raised when a configuration file is missing fields or has invalid values."""
