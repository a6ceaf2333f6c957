"""
Error Types for Canvas Panel
============================

Domain errors raised by the macro layer. Each carries the HTTP status the
API layer reports it with.
"""


class MacroError(Exception):
    """Base class for macro failures that abort the whole operation."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MacroValidationError(MacroError):
    """Request is missing or has malformed input; nothing was called remotely."""
    status_code = 400


class ZoneNotFoundError(MacroError):
    status_code = 404


class RecordNotFoundError(MacroError):
    status_code = 404


class ZoneGeometryError(MacroError):
    """Anchor exists but carries no usable location/size."""
    status_code = 422


class UnsupportedWidgetTypeError(MacroError):
    status_code = 422


class LedgerCorruptError(MacroError):
    """The deleted-records file exists but cannot be parsed."""
    status_code = 500
