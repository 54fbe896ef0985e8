"""
Volume session controller.

Owns the session lifecycle: repeats trade rounds with a random pause between them
until the end time or a stop request, and reports status after every round.
"""

import asyncio
import inspect
import random
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger

from volumebot.config import (
    MAX_ROUND_INTERVAL,
    MIN_ROUND_INTERVAL,
    ROUND_FAILURE_BACKOFF,
    WALLET_GROUP_SIZE,
)
from volumebot.errors import ConfigurationError, SessionAlreadyRunningError
from volumebot.events.event_system import EventSystem, SessionStatusEvent
from volumebot.solana.confirmation_manager import ConfirmationManager
from volumebot.solana.models import SessionStats, SessionStatus, TradeProvider
from volumebot.solana.scheduler import TradeCycleScheduler
from volumebot.solana.wallet_manager import TradeWallet, partition_wallets

StatusListener = Callable[[SessionStatus], Any]


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


@dataclass
class SessionConfig:
    """Round pacing for a session. Durations are in seconds."""
    min_round_interval: float = MIN_ROUND_INTERVAL
    max_round_interval: float = MAX_ROUND_INTERVAL
    round_failure_backoff: float = ROUND_FAILURE_BACKOFF
    group_size: int = WALLET_GROUP_SIZE

    def __post_init__(self):
        """Validate session configuration."""
        if self.min_round_interval < 0:
            raise ValueError("min_round_interval must be non-negative")

        if self.max_round_interval < self.min_round_interval:
            raise ValueError("max_round_interval must be >= min_round_interval")

        if self.round_failure_backoff < 0:
            raise ValueError("round_failure_backoff must be non-negative")

        if self.group_size < 1:
            raise ValueError("group_size must be at least 1")


class VolumeSession:
    """
    Runs trade rounds for a fixed duration.

    State moves idle -> running -> stopped or completed. ``stop()`` may be called from
    any state; an in-flight round finishes, but no new round starts.
    """

    def __init__(
        self,
        scheduler: TradeCycleScheduler,
        confirmation_manager: ConfirmationManager,
        wallets: Sequence[TradeWallet],
        config: Optional[SessionConfig] = None,
        events: Optional[EventSystem] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the session.

        Args:
            scheduler: Runs individual rounds
            confirmation_manager: Provides the block height tracker owned by the session
            wallets: Trader wallets used for every round
            config: Round pacing
            events: Event bus for status events
            session_id: Identifier carried on status events
            clock: Wall clock used for the end time
            rng: Random source for inter-round delays
        """
        self.scheduler = scheduler
        self.confirmation_manager = confirmation_manager
        self.wallets = list(wallets)
        self.config = config or SessionConfig()
        self.events = events
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._clock = clock
        self._rng = rng or random.Random()

        self.state = SessionState.IDLE
        self.stats = SessionStats()
        self._stop_event: Optional[asyncio.Event] = None
        self._intervals: List[asyncio.Task] = []
        self._listeners: List[StatusListener] = []

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    def add_status_listener(self, listener: StatusListener):
        """Register a callback (sync or async) invoked with every status update."""
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_status(self) -> SessionStatus:
        return SessionStatus(
            success_rate=self.stats.success_rate,
            remaining_time=self.stats.remaining_time(self._clock()),
            is_running=self.is_running
        )

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def start(self, token_address: str, duration: float, provider: TradeProvider) -> SessionStats:
        """
        Run rounds until the duration elapses or stop() is called.

        Args:
            token_address: Token mint address
            duration: Session length in seconds
            provider: Provider used to build trades

        Returns:
            Final session statistics

        Raises:
            SessionAlreadyRunningError: If the session is already running
            ConfigurationError: If there are no trader wallets
        """
        if self.is_running:
            raise SessionAlreadyRunningError(f"Session {self.session_id} is already running")

        if not self.wallets:
            raise ConfigurationError("No trader wallets available for the session")

        if duration <= 0:
            raise ValueError("duration must be positive")

        provider = TradeProvider(provider)
        start_time = self._clock()
        self.stats = SessionStats(start_time=start_time, end_time=start_time + duration)
        self._stop_event = asyncio.Event()
        self.state = SessionState.RUNNING

        self._intervals.append(self.confirmation_manager.start_block_height_tracking())
        wallet_groups = partition_wallets(self.wallets, self.config.group_size)

        logger.bind(
            session_id=self.session_id,
            token=token_address,
            provider=provider.value,
            wallets=len(self.wallets),
            groups=len(wallet_groups)
        ).info(f"Session {self.session_id} started for {duration:.0f}s")

        finished = False
        try:
            while not self._stop_requested() and self._clock() < self.stats.end_time:
                try:
                    result = await self.scheduler.run_round(wallet_groups, token_address, provider)
                    self.stats.record_round(result)
                    await self._emit_status()
                except Exception as e:
                    logger.bind(session_id=self.session_id).error(f"Error in trading round: {str(e)}")
                    # Count the round as a full set of failed attempts
                    self.stats.total_trades += len(self.wallets) * 2
                    await self._emit_status()
                    await self._sleep_unless_stopped(self.config.round_failure_backoff)
                    continue

                if self._stop_requested() or self._clock() >= self.stats.end_time:
                    break

                delay = self._rng.uniform(self.config.min_round_interval, self.config.max_round_interval)
                logger.info(f"Waiting {delay:.1f}s before next round")
                await self._sleep_unless_stopped(delay)

            finished = True
        finally:
            self._clear_intervals()
            if self.state == SessionState.RUNNING:
                if finished and not self._stop_requested():
                    self.state = SessionState.COMPLETED
                else:
                    self.state = SessionState.STOPPED

        await self._emit_status()
        logger.bind(session_id=self.session_id, total_trades=self.stats.total_trades).info(
            f"Session {self.session_id} {self.state.value}: {self.stats.success_rate} successful trades"
        )
        return self.stats

    def stop(self):
        """Request the session to stop. Safe to call in any state, any number of times."""
        if self._stop_event is not None:
            self._stop_event.set()

        if self.state != SessionState.STOPPED:
            logger.info(f"Stopping session {self.session_id}")
        self.state = SessionState.STOPPED
        self._clear_intervals()

    def _clear_intervals(self):
        for task in self._intervals:
            task.cancel()
        self._intervals.clear()
        self.confirmation_manager.stop_block_height_tracking()

    async def _sleep_unless_stopped(self, delay: float):
        if self._stop_event is None or delay <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _emit_status(self):
        status = self.get_status()
        logger.bind(session_id=self.session_id, is_running=status.is_running).info(
            f"Session status: {status.success_rate} successful, {status.remaining_time}s remaining"
        )

        for listener in list(self._listeners):
            try:
                result = listener(status)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Status listener failed: {str(e)}")

        if self.events is not None and self.events.running:
            await self.events.publish(SessionStatusEvent(
                self.session_id,
                status.success_rate,
                status.remaining_time,
                status.is_running
            ))
