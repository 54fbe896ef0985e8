"""
Transaction confirmation for Solana.

Every submitted signature gets exactly one terminal outcome. Two strategies race
for it: a push subscription on the signature and active status polling through a
shared rate-limit gate. Polling also enforces block height expiry, and an overall
timer is the backstop that guarantees callers are never left waiting.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from volumebot.config import (
    BLOCK_HEIGHT_REFRESH_INTERVAL,
    CONFIRMATION_COMMITMENT,
    CONFIRMATION_TIMEOUT,
    MAX_BLOCK_HEIGHT_AGE,
    MIN_RETRY_AFTER,
    STATUS_CHECK_INTERVAL,
)
from volumebot.errors import (
    ConfirmationTimeoutError,
    RateLimitedError,
    TransactionExpiredError,
    TransactionFailedError,
)
from volumebot.solana.ledger import Ledger, SignatureSubscription
from volumebot.solana.rate_limiter import RateLimitGate, is_rate_limit_error, retry_after_from_error

# Shortest sleep while the rate-limit gate is closed
MIN_GATE_WAIT = 0.01


@dataclass
class ConfirmationConfig:
    """Timing and policy for confirmations. Durations are in seconds."""
    commitment: str = CONFIRMATION_COMMITMENT
    timeout: float = CONFIRMATION_TIMEOUT
    status_check_interval: float = STATUS_CHECK_INTERVAL
    max_block_height_age: int = MAX_BLOCK_HEIGHT_AGE
    block_height_refresh_interval: float = BLOCK_HEIGHT_REFRESH_INTERVAL
    min_retry_after: float = MIN_RETRY_AFTER

    def __post_init__(self):
        """Validate confirmation configuration."""
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

        if self.status_check_interval <= 0:
            raise ValueError("status_check_interval must be positive")

        if self.block_height_refresh_interval <= 0:
            raise ValueError("block_height_refresh_interval must be positive")

        if self.max_block_height_age < 1:
            raise ValueError("max_block_height_age must be at least 1")

        if self.min_retry_after < 0:
            raise ValueError("min_retry_after must be non-negative")


@dataclass
class PendingConfirmation:
    """One in-flight confirmation. Owned exclusively by the ConfirmationManager."""
    signature: str
    start_time: float
    start_block_height: int
    future: asyncio.Future
    attempts: int = 0
    waiters: int = 0
    subscribed: bool = False
    status_checked: bool = False
    subscription: Optional[SignatureSubscription] = None
    subscription_task: Optional[asyncio.Task] = None
    poll_task: Optional[asyncio.Task] = None
    timeout_handle: Optional[asyncio.TimerHandle] = None


def _cancel_task(task: Optional[asyncio.Task]):
    if task is not None and not task.done() and task is not asyncio.current_task():
        task.cancel()


class ConfirmationManager:
    """
    Tracks in-flight transactions and resolves each to confirmed, failed or expired.

    Resolution is guarded: the first strategy to produce a terminal outcome wins and
    every later attempt for the same signature is a no-op. Resolving a confirmation
    cancels its subscription, poll task and timeout timer.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: Optional[ConfirmationConfig] = None,
        rate_limiter: Optional[RateLimitGate] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the confirmation manager.

        Args:
            ledger: Ledger used for status polls, subscriptions and block height
            config: Confirmation timing and policy
            rate_limiter: Shared gate for status polls
            clock: Monotonic time source
        """
        self.ledger = ledger
        self.config = config or ConfirmationConfig()
        self.rate_limiter = rate_limiter or RateLimitGate(
            min_retry_after=self.config.min_retry_after,
            clock=clock
        )
        self._clock = clock

        # Active confirmations keyed by signature
        self.pending: Dict[str, PendingConfirmation] = {}

        # Block height cache shared by all expiry checks
        self.last_known_block_height = 0
        self._held = False
        self._tracker_task: Optional[asyncio.Task] = None

        logger.info(
            f"ConfirmationManager initialized (commitment={self.config.commitment}, "
            f"timeout={self.config.timeout}s)"
        )

    @property
    def active_count(self) -> int:
        return len(self.pending)

    async def confirm(self, signature: str, start_block_height: Optional[int] = None) -> bool:
        """
        Wait for a definitive outcome for a submitted transaction.

        Args:
            signature: Transaction signature
            start_block_height: Block height observed at submission; defaults to the
                cached height

        Returns:
            True once the transaction is confirmed or finalized

        Raises:
            TransactionFailedError: The ledger reported an execution error
            TransactionExpiredError: The block height budget ran out first
            ConfirmationTimeoutError: No terminal signal within the timeout
        """
        existing = self.pending.get(signature)
        if existing is not None:
            logger.debug(f"Joining pending confirmation for {signature}")
            return await self._wait(existing)

        if start_block_height is None:
            start_block_height = await self._current_block_height()

        # Another caller may have registered the signature while we were suspended
        existing = self.pending.get(signature)
        if existing is not None:
            return await self._wait(existing)

        loop = asyncio.get_running_loop()
        pending = PendingConfirmation(
            signature=signature,
            start_time=self._clock(),
            start_block_height=start_block_height,
            future=loop.create_future()
        )
        self.pending[signature] = pending

        # Start parallel confirmation methods
        pending.subscription_task = asyncio.create_task(self._start_subscription(pending))
        pending.poll_task = asyncio.create_task(self._poll_status(pending))
        pending.timeout_handle = loop.call_later(self.config.timeout, self._handle_timeout, pending)
        self._ensure_tracking()

        logger.bind(signature=signature, start_block_height=start_block_height).info(
            f"Confirming transaction {signature}"
        )

        return await self._wait(pending)

    async def _wait(self, pending: PendingConfirmation) -> bool:
        """Await the shared outcome; one caller's cancellation never cancels it for others."""
        pending.waiters += 1
        try:
            return await asyncio.shield(pending.future)
        finally:
            pending.waiters -= 1
            if pending.waiters == 0 and self.pending.get(pending.signature) is pending:
                # Every caller gave up before resolution
                self.pending.pop(pending.signature, None)
                pending.future.cancel()
                self._cleanup(pending)
                self._release_tracking()

    async def _current_block_height(self) -> int:
        if self.last_known_block_height > 0:
            return self.last_known_block_height
        return await self.refresh_block_height()

    async def _start_subscription(self, pending: PendingConfirmation):
        """Strategy A: push notification for the signature."""
        signature = pending.signature
        try:
            subscription = await self.ledger.subscribe_signature(
                signature,
                self.config.commitment,
                lambda err: self._handle_notification(signature, err)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Websocket subscription failed for {signature}: {e}")
            return

        if self.pending.get(signature) is not pending:
            # Resolved while the subscription was being set up
            subscription.cancel()
            return

        pending.subscription = subscription
        pending.subscribed = True
        logger.debug(f"Subscribed to signature {signature}")

    def _handle_notification(self, signature: str, err: Optional[Any]):
        if err is not None:
            self._complete(signature, TransactionFailedError(signature, err))
        else:
            self._complete(signature)

    async def _poll_status(self, pending: PendingConfirmation):
        """Strategy B: status polling through the shared rate-limit gate."""
        signature = pending.signature

        while self.pending.get(signature) is pending:
            if not self.rate_limiter.try_acquire():
                await asyncio.sleep(max(self.rate_limiter.wait_time(), MIN_GATE_WAIT))
                continue

            pending.attempts += 1
            try:
                status = await self.ledger.get_signature_status(signature)
            except RateLimitedError as e:
                await asyncio.sleep(self.rate_limiter.record_rate_limited(e.retry_after))
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if is_rate_limit_error(e):
                    await asyncio.sleep(self.rate_limiter.record_rate_limited(retry_after_from_error(e)))
                    continue
                logger.error(f"Status check failed for {signature}: {e}")
                await asyncio.sleep(self.config.status_check_interval)
                continue

            pending.status_checked = True
            if self.pending.get(signature) is not pending:
                return

            if status is not None and status.err is not None:
                self._complete(signature, TransactionFailedError(signature, status.err))
                return

            if status is not None and status.is_confirmed:
                self._complete(signature)
                return

            blocks_passed = self._blocks_passed(pending)
            if blocks_passed > self.config.max_block_height_age:
                self._complete(signature, TransactionExpiredError(signature, blocks_passed))
                return

            await asyncio.sleep(self.config.status_check_interval)

    def _blocks_passed(self, pending: PendingConfirmation) -> int:
        if self.last_known_block_height <= 0:
            return 0
        if pending.start_block_height <= 0:
            # Height was unknown at submission; start counting from the first observation
            pending.start_block_height = self.last_known_block_height
        return self.last_known_block_height - pending.start_block_height

    def is_transaction_expired(self, signature: str) -> bool:
        pending = self.pending.get(signature)
        if pending is None:
            return True
        return self._blocks_passed(pending) > self.config.max_block_height_age

    def _handle_timeout(self, pending: PendingConfirmation):
        if self.pending.get(pending.signature) is pending:
            self._complete(pending.signature, ConfirmationTimeoutError(pending.signature, self.config.timeout))

    def _complete(self, signature: str, error: Optional[Exception] = None):
        """Resolve a confirmation exactly once; later calls are no-ops."""
        pending = self.pending.pop(signature, None)
        if pending is None:
            return

        # Resolve first so nothing below can leave the caller waiting
        if not pending.future.done():
            if error is not None:
                pending.future.set_exception(error)
            else:
                pending.future.set_result(True)

        try:
            self._cleanup(pending)
        finally:
            self._release_tracking()

        context = logger.bind(
            signature=signature,
            attempts=pending.attempts,
            elapsed=self._clock() - pending.start_time
        )
        if error is not None:
            context.warning(f"Confirmation failed for {signature}: {error}")
        else:
            context.info(f"Transaction confirmed: {signature}")

    def _cleanup(self, pending: PendingConfirmation):
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if pending.subscription is not None:
            pending.subscription.cancel()
            pending.subscription = None
        _cancel_task(pending.subscription_task)
        _cancel_task(pending.poll_task)

    # Block height tracking

    def start_block_height_tracking(self) -> asyncio.Task:
        """
        Keep the block height cache fresh until stop_block_height_tracking is called.

        Without this the tracker still runs, but only while confirmations are pending.
        """
        self._held = True
        return self._ensure_tracking()

    def stop_block_height_tracking(self):
        self._held = False
        _cancel_task(self._tracker_task)

    def _ensure_tracking(self) -> asyncio.Task:
        if self._tracker_task is None or self._tracker_task.done():
            self._tracker_task = asyncio.create_task(self._track_block_height())
        return self._tracker_task

    def _release_tracking(self):
        if not self._held and not self.pending:
            _cancel_task(self._tracker_task)

    async def _track_block_height(self):
        while True:
            await self.refresh_block_height()
            await asyncio.sleep(self.config.block_height_refresh_interval)

    async def refresh_block_height(self) -> int:
        """Fetch the current block height into the shared cache."""
        try:
            height = await self.ledger.get_block_height()
        except asyncio.CancelledError:
            raise
        except RateLimitedError:
            logger.warning("Rate-limited while updating block height")
            return self.last_known_block_height
        except Exception as e:
            logger.warning(f"Failed to update block height: {e}")
            return self.last_known_block_height

        self.last_known_block_height = height
        return height

    async def close(self):
        """Stop tracking and resolve anything still pending as timed out."""
        self.stop_block_height_tracking()
        for signature, pending in list(self.pending.items()):
            self._complete(signature, ConfirmationTimeoutError(signature, self._clock() - pending.start_time))
        logger.info("ConfirmationManager closed")
