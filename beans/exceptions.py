"""
Exception hierarchy raised while scanning, wiring, constructing and closing a context.
"""

__all__ = [
    'BeanError',
    'ScanError',
    'DescriptorError',
    'InjectionError',
    'MissingDependencyError',
    'AmbiguousDependencyError',
    'DuplicateBeanError',
    'CyclicDependencyError',
    'FactoryError',
    'PostConstructError',
    'DestroyError'
]


class BeanError(Exception):
    """Base class for every error raised by the container."""
    pass


class ScanError(BeanError):
    """Raised for malformed scan input (value types, classes, bad factories)."""
    pass


class DescriptorError(ScanError):
    """Raised when an injectable field has an unsupported shape."""
    pass


class InjectionError(BeanError):
    """Raised when a resolved value can not be assigned to a field."""
    pass


class MissingDependencyError(InjectionError):
    """Raised when a required field has no candidates."""
    pass


class AmbiguousDependencyError(InjectionError):
    """Raised when a single-value field has more than one candidate."""
    pass


class DuplicateBeanError(InjectionError):
    """Raised when two candidates resolve to the same key of a map field."""
    pass


class CyclicDependencyError(BeanError):
    """Raised when a non-lazy reference cycle is found during construction."""
    pass


class FactoryError(BeanError):
    """Raised when a factory bean fails to produce its object."""
    pass


class PostConstructError(BeanError):
    """Raised when a post-construct hook fails."""
    pass


class DestroyError(BeanError):
    """
    Raised by Context.close() when one or more beans failed to destroy.

    Attributes:
        errors: every underlying failure, in destruction order.
    """

    def __init__(self, message: str, errors: list[Exception]):
        super().__init__(message)
        self.errors = errors
