"""Domain error taxonomy.

Validation and not-found errors stop the operation and reach the caller.
Cleanup errors are logged by the cascade layer and never raised past it.
Aggregation errors reach the immediate caller; request handling treats
recomputation as best-effort.
"""


class DomainError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class DependencyCleanupError(DomainError):
    def __init__(self, collection: str, message: str):
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class AggregationError(DomainError):
    pass
