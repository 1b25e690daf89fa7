"""
Exceptions for calls the form cannot degrade around.

Recoverable misuse (name collisions, writes to unregistered names) is logged
as a warning by the module that detects it. Validation failures are data and
travel through callbacks as FieldError records.
"""


class FormStateError(Exception):
    """Base class for formstate errors."""


class FieldNameError(FormStateError, ValueError):
    """Raised when a field operation is called without a usable name."""


class FormUsageError(FormStateError):
    """Raised when the adapter hands the form something it cannot bind."""
