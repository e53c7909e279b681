from __future__ import annotations


class AppError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class ValidationFailure(AppError):
    # Request is malformed; the operation was not attempted.
    pass


class InvalidIdentifier(ValidationFailure):
    # A view or schema name does not match the identifier pattern.
    def __init__(self, name: str):
        super().__init__(f"Invalid view name format: {name!r}")
        self.name = name


class SourceViewUnavailable(AppError):
    # The source view could not be read (renamed, dropped, store unreachable).
    def __init__(self, view_name: str, reason: str = ""):
        msg = f"Source view {view_name!r} could not be read"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.view_name = view_name
        self.reason = reason
