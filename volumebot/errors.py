"""
Error taxonomy for the volume bot.

Per-pass errors are caught at the trade-cycle scheduler, round-level errors at the
session controller; only ConfigurationError is fatal.
"""

from typing import Any, Optional


class VolumeBotError(Exception):
    """Base exception for volume bot errors."""
    pass


class ConfigurationError(VolumeBotError):
    """Missing or invalid construction-time configuration (credentials, endpoints)."""
    pass


class RateLimitedError(VolumeBotError):
    """The provider throttled the caller. Always transient."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TransactionFailedError(VolumeBotError):
    """The ledger reported a definitive execution error for a transaction."""

    def __init__(self, signature: str, ledger_error: Any = None, message: Optional[str] = None):
        super().__init__(message or f"Transaction {signature} failed: {ledger_error}")
        self.signature = signature
        self.ledger_error = ledger_error


class TransactionExpiredError(TransactionFailedError):
    """The transaction outlived its block height budget before confirming."""

    def __init__(self, signature: str, blocks_passed: int):
        super().__init__(
            signature,
            ledger_error="Transaction expired",
            message=f"Transaction {signature} expired after {blocks_passed} blocks"
        )
        self.blocks_passed = blocks_passed


class ConfirmationTimeoutError(VolumeBotError):
    """
    No terminal signal arrived within the timeout budget.

    The outcome is unknown: the transaction may still land later.
    """

    def __init__(self, signature: str, timeout: float):
        super().__init__(
            f"Transaction {signature} was not confirmed in {timeout:g} seconds. "
            f"It is unknown if it succeeded or failed."
        )
        self.signature = signature
        self.timeout = timeout


class SwapBuildError(VolumeBotError):
    """A quote/build service returned an error or a malformed transaction."""
    pass


class InsufficientBalanceError(VolumeBotError):
    """A wallet does not hold enough of an asset for the requested operation."""
    pass


class SessionAlreadyRunningError(VolumeBotError):
    """start() was called on a session that is already running."""
    pass
