# util/errors.py


class AppError(Exception):
    # Flow: raise a subclass to short-circuit with a typed failure & message.
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(AppError, ValueError):
    """Caller passed something the store cannot accept (fatal to the call)."""


class DecodeFailure(AppError, ValueError):
    """A stored value does not parse as canonical-encoded data."""
