class PreconditionError(ValueError):
    """Raised when an input violates a precondition of the estimator."""


class NoStructureError(Exception):
    """Raised when a pyramid level carries no usable edge information."""
