"""Typed exception hierarchy for the Harvest connector and sync pipeline.

Provides structured exceptions for differentiated error handling
(missing configuration vs throttling vs lookup degradation vs storage
failures).
"""

from datetime import date
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from integrations.retry import RetryOutcome


class ConnectorError(Exception):
    """Base exception for all connector-related errors.

    Carries the provider name so callers can identify which upstream failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class ConfigurationError(ConnectorError):
    """Required credentials or account id missing at construction.

    Raised before any network or database I/O.
    """

    def __init__(self, message: str, provider_name: str = "", missing: tuple[str, ...] = ()):
        self.missing = missing
        super().__init__(message, provider_name)


class ConnectorAuthError(ConnectorError):
    """Credentials rejected by the upstream API (HTTP 401/403)."""

    pass


class ConnectorConnectionError(ConnectorError):
    """Network failures: timeouts, DNS resolution, connection refused."""

    pass


class ConnectorAPIError(ConnectorError):
    """Non-2xx response from the upstream API.

    ``retry_after`` is the raw ``Retry-After`` header value, if any.
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        retry_after: str | None = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message, provider_name)


class RetryExhaustedError(ConnectorError):
    """An operation kept failing with a retriable status until the budget ran out.

    Attributes:
        outcome: Attempts, delays and last status observed.
        last_error: The final failure (also chained as ``__cause__``).
    """

    def __init__(
        self,
        message: str,
        outcome: "RetryOutcome",
        last_error: BaseException,
        provider_name: str = "",
    ):
        self.outcome = outcome
        self.last_error = last_error
        super().__init__(message, provider_name)

    @property
    def status_code(self) -> Optional[int]:
        return self.outcome.last_status


class ThrottlingError(RetryExhaustedError):
    """Retry budget exhausted while the upstream kept answering 429."""

    pass


class SyncCancelledError(ConnectorError):
    """The caller signalled cancellation between pages or before resolution."""

    pass


class SyncError(ConnectorError):
    """Unrecoverable failure of a connector operation, with call context.

    The original exception is chained as ``__cause__`` and kept on
    ``original`` so callers can branch on its type.
    """

    def __init__(
        self,
        operation: str,
        original: BaseException,
        provider_name: str = "",
        from_date: date | None = None,
        to_date: date | None = None,
        client_id: str | None = None,
        project_id: str | None = None,
    ):
        self.operation = operation
        self.original = original
        self.from_date = from_date
        self.to_date = to_date
        self.client_id = client_id
        self.project_id = project_id
        super().__init__(
            f"{operation} failed ({self.context_summary()}): {original}",
            provider_name,
        )

    @property
    def attempts(self) -> Optional[int]:
        if isinstance(self.original, RetryExhaustedError):
            return self.original.outcome.attempts
        return None

    def context_summary(self) -> str:
        parts = [f"from={self.from_date}", f"to={self.to_date}"]
        if self.client_id:
            parts.append(f"client_id={self.client_id}")
        if self.project_id:
            parts.append(f"project_id={self.project_id}")
        if self.attempts is not None:
            parts.append(f"attempts={self.attempts}")
        return ", ".join(parts)


class ReferenceLookupError(Exception):
    """A batch reference lookup for one entity kind failed.

    Never propagated out of a sync: the resolver logs it, records the kind
    in the sync metrics and treats the whole batch as unresolved.
    """

    def __init__(self, kind: str, id_count: int, original: BaseException):
        self.kind = kind
        self.id_count = id_count
        self.original = original
        super().__init__(f"lookup of {id_count} {kind} ids failed: {original}")


class TransactionFailure(Exception):
    """The transactional upsert failed and was rolled back."""

    def __init__(self, message: str, entry_count: int = 0):
        self.entry_count = entry_count
        super().__init__(message)


class SyncInProgressError(Exception):
    """Another sync holds the sync lock; only one runs at a time."""

    pass
