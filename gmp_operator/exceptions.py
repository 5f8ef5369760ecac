"""
Custom exceptions for the GMP operator.

Exception Hierarchy:
- OperatorError: Base exception for all operator errors
  - ValidationError: Problem with a single user-owned resource. Recorded as a
    failure condition on that resource, never aborts a reconciliation cycle.
    - SpecError: Resource body does not match its schema
    - ExpressionError: PromQL expression could not be parsed
    - SecretResolutionError: Referenced secret or key does not exist
  - TransientError: Infrastructure hiccup (conflict, race, timeout), retried
  - RetryBudgetExhausted: Retries ran out, the cycle gets requeued
"""


class OperatorError(Exception):
    """Base exception for operator errors."""
    pass


class ValidationError(OperatorError):
    """Raised when a user-owned resource cannot be turned into configuration."""
    pass


class SpecError(ValidationError):
    """Raised when a resource body fails model validation."""
    pass


class ExpressionError(ValidationError):
    """Raised when a PromQL expression is syntactically invalid."""

    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} (at char {position})"
        super().__init__(message)


class SecretResolutionError(ValidationError):
    """Raised when a referenced secret or secret key cannot be found."""

    def __init__(self, namespace: str, name: str, key: str, reason: str):
        self.namespace = namespace
        self.name = name
        self.key = key
        super().__init__(f"secret {namespace}/{name} key {key!r}: {reason}")


class TransientError(OperatorError):
    """Raised for errors that are expected to go away when retried."""
    pass


class RetryBudgetExhausted(OperatorError):
    """Raised when a retry policy runs past its deadline."""
    pass
