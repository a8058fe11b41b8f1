"""Exceptions raised by chartlab."""


class ValidationError(ValueError):
    """Invalid user-supplied data or configuration, rejected at construction."""
