"""Typed errors raised at the recommendation service boundary."""


class RecsysError(Exception):
    """Base class for recommendation subsystem errors."""


class InvariantViolationError(RecsysError, ValueError):
    """Raised when an operation would break a hard invariant.

    Examples: variant allocations that do not sum to 1.0, ratings outside
    the 1-5 scale, or unknown recommendation ids.
    """


class ExperimentNotFoundError(RecsysError, KeyError):
    """Raised when an experiment id is not registered."""

    def __init__(self, experiment_id: str) -> None:
        super().__init__(experiment_id)
        self.experiment_id = experiment_id

    def __str__(self) -> str:
        return f"Experiment not found: {self.experiment_id}"


class ExperimentStateError(InvariantViolationError):
    """Raised on an illegal experiment state transition."""

    def __init__(self, experiment_id: str, current: str, action: str) -> None:
        super().__init__(f"Cannot {action} experiment {experiment_id} in state '{current}'")
        self.experiment_id = experiment_id
        self.current = current
        self.action = action


class TrendingDiscoveryError(RecsysError):
    """Wraps an unexpected failure while ranking trending items."""


class RecommendationGenerationError(RecsysError):
    """Wraps an unexpected failure while scoring recommendations."""

    def __init__(self, user_id: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to generate recommendations for {user_id}: {message}")
        self.user_id = user_id
        self.cause = cause


class RecommendationTimeoutError(RecommendationGenerationError):
    """Raised when generation exceeds its configured deadline."""

    def __init__(self, user_id: str, timeout_seconds: float) -> None:
        super().__init__(user_id, f"deadline of {timeout_seconds:.1f}s exceeded")
        self.timeout_seconds = timeout_seconds


class StorageError(RecsysError):
    """Wraps a failure raised by the underlying repository."""

    def __init__(
        self,
        operation: str,
        namespace: str,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        target = f"{namespace}/{key}" if key is not None else namespace
        super().__init__(f"Storage {operation} failed for {target}: {cause}")
        self.operation = operation
        self.namespace = namespace
        self.key = key
        self.cause = cause


class InteractionTrackingError(RecsysError):
    """Wraps an unexpected failure while fanning out a user interaction."""

    def __init__(self, user_id: str, item_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to track interaction for {user_id} on {item_id}: {cause}")
        self.user_id = user_id
        self.item_id = item_id
        self.cause = cause
