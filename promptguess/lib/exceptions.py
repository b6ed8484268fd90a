"""Error taxonomy for guess evaluation and the reward ledger."""

from typing import Any, Dict, Optional


class PromptGuessError(Exception):
    """Base exception for all guess evaluation and ledger errors."""

    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class InvalidInputError(PromptGuessError):
    """Raised for missing or malformed caller input. Never retried."""


class EmbeddingUnavailableError(PromptGuessError):
    """Raised when the embedding provider fails or times out."""

    retryable = True

    def __init__(
        self,
        message: str = "Embedding provider unavailable",
        timed_out: bool = False,
        **kwargs: Any,
    ) -> None:
        details = kwargs.copy()
        details["timed_out"] = timed_out
        super().__init__(message, details)
        self.timed_out = timed_out


class EmbeddingDimensionMismatchError(PromptGuessError):
    """Raised when two embedding vectors have different lengths."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(
            "Embedding dimensions do not match",
            {"left_dimensions": left, "right_dimensions": right},
        )
        self.left = left
        self.right = right


class UnauthorizedError(PromptGuessError):
    """Raised when a privileged ledger operation is attempted by a non-authority."""

    def __init__(self, caller_identity: str, operation: str) -> None:
        super().__init__(
            "Caller is not the registered authority",
            {"caller_identity": caller_identity, "operation": operation},
        )
        self.caller_identity = caller_identity
        self.operation = operation


class AlreadyInitializedError(PromptGuessError):
    """Raised when the emission state is initialized a second time."""

    def __init__(self, message: str = "Emission state is already initialized") -> None:
        super().__init__(message)


class LedgerNotFoundError(PromptGuessError):
    """Raised when a ledger operation runs before the emission state exists."""

    def __init__(self, message: str = "Emission state has not been initialized") -> None:
        super().__init__(message)


class ConcurrentModificationError(PromptGuessError):
    """Raised when a ledger commit observes a conflicting write."""

    retryable = True

    def __init__(
        self,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ) -> None:
        details = {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if actual_version is not None:
            details["actual_version"] = actual_version
        super().__init__("Emission state was modified concurrently", details)
        self.expected_version = expected_version
        self.actual_version = actual_version


class ChallengeNotFoundError(PromptGuessError):
    """Raised when a guess references an unknown challenge."""

    def __init__(self, challenge_id: Any) -> None:
        super().__init__("Challenge not found", {"challenge_id": str(challenge_id)})
        self.challenge_id = challenge_id
