"""Custom exceptions for the claim service.

Every error carries a stable ``code`` which the HTTP layer reports to callers.
"""


class ClaimDropError(Exception):
    """Base exception for all claim service errors."""

    code = "ClaimDropError"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidIdentityError(ClaimDropError):
    """Raised when a wallet address is malformed."""

    code = "InvalidIdentity"

    def __init__(self, raw: object, reason: str):
        message = f"Invalid wallet address {raw!r}: {reason}"
        super().__init__(message, {"address": raw, "reason": reason})
        self.raw = raw
        self.reason = reason


class NotEligibleError(ClaimDropError):
    """Raised when an address has no allocation."""

    code = "NotEligible"

    def __init__(self, canonical_id: str):
        super().__init__(f"Not eligible: {canonical_id}", {"address": canonical_id})
        self.canonical_id = canonical_id


class AlreadyClaimedError(ClaimDropError):
    """Raised when an allocation is already reserved or consumed."""

    code = "AlreadyClaimed"

    def __init__(self, canonical_id: str, state: str):
        super().__init__(
            f"Already claimed: {canonical_id} ({state})",
            {"address": canonical_id, "state": state},
        )
        self.canonical_id = canonical_id
        self.state = state


class NotReservedError(ClaimDropError):
    """Raised when confirm/release targets an entry that is not reserved."""

    code = "NotReserved"

    def __init__(self, canonical_id: str, state: str | None = None):
        message = f"No outstanding claim for {canonical_id}"
        if state:
            message += f" (state: {state})"
        super().__init__(message, {"address": canonical_id, "state": state})
        self.canonical_id = canonical_id
        self.state = state


class IssuanceFailedError(ClaimDropError):
    """Raised when a claim transaction could not be issued or recorded.

    After a failed build the caller's reservation is released if that release
    can be saved; otherwise the entry stays reserved until a sweep or an
    operator release. After a failed confirmation the entry stays reserved.
    """

    code = "IssuanceFailed"

    def __init__(self, canonical_id: str, reason: str):
        super().__init__(
            f"Failed to issue claim for {canonical_id}: {reason}",
            {"address": canonical_id, "reason": reason},
        )
        self.canonical_id = canonical_id
        self.reason = reason


class PersistenceError(ClaimDropError):
    """Raised when the claim state cannot be written to or read from disk."""

    code = "PersistenceError"

    def __init__(self, path: str, message: str):
        super().__init__(f"Persistence failed [{path}]: {message}", {"path": path})
        self.path = path


class DataSourceError(ClaimDropError):
    """Raised when the ledger RPC fails or returns invalid data."""

    code = "DataSourceError"

    def __init__(
        self,
        source: str,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
    ):
        full_message = f"[{source}] {message}"
        super().__init__(
            full_message,
            {
                "source": source,
                "endpoint": endpoint,
                "status_code": status_code,
            },
        )
        self.source = source
        self.endpoint = endpoint
        self.status_code = status_code


class RateLimitError(DataSourceError):
    """Raised when the RPC node rate limits us."""

    def __init__(
        self,
        source: str,
        retry_after_seconds: int | None = None,
        endpoint: str | None = None,
    ):
        message = "Rate limit exceeded"
        if retry_after_seconds:
            message += f", retry after {retry_after_seconds}s"
        super().__init__(source, message, endpoint=endpoint, status_code=429)
        self.retry_after_seconds = retry_after_seconds


class TransactionBuildError(DataSourceError):
    """Raised when a transfer transaction cannot be assembled."""


class ConfigurationError(ClaimDropError):
    """Raised when configuration is invalid or missing."""

    code = "ConfigurationError"

    def __init__(self, config_key: str, message: str):
        full_message = f"Configuration error [{config_key}]: {message}"
        super().__init__(full_message, {"config_key": config_key})
        self.config_key = config_key
