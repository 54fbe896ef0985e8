"""Tests for the volume session controller."""

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from volumebot.errors import ConfigurationError, SessionAlreadyRunningError
from volumebot.events.event_system import EventSystem
from volumebot.solana.models import PassResult, PassStatus, RoundResult, SessionStats, TradeAction, TradeProvider
from volumebot.solana.volume_session import SessionConfig, SessionState, VolumeSession

from tests.conftest import wait_until

TOKEN = "TokenMint1111111111111111111111111111111111"


def round_result(wallets, successes: int) -> RoundResult:
    """A round over ``wallets`` where the first ``successes`` passes confirmed."""
    results = []
    for n in range(len(wallets) * 2):
        wallet = wallets[n % len(wallets)]
        results.append(PassResult(
            wallet_index=wallet.index,
            wallet_address=wallet.public_key,
            action=TradeAction.BUY if n < len(wallets) else TradeAction.SELL,
            status=PassStatus.CONFIRMED if n < successes else PassStatus.FAILED
        ))
    return RoundResult(wallet_count=len(wallets), pass_results=results)


def fast_session_config(**overrides) -> SessionConfig:
    values = dict(min_round_interval=0.01, max_round_interval=0.02, round_failure_backoff=0.01, group_size=5)
    values.update(overrides)
    return SessionConfig(**values)


def mock_confirmation_manager() -> MagicMock:
    """Confirmation manager whose tracker is a real, long-sleeping task."""
    manager = MagicMock()
    manager.tracker = None

    def start_tracking():
        manager.tracker = asyncio.create_task(asyncio.sleep(3600))
        return manager.tracker

    manager.start_block_height_tracking.side_effect = start_tracking
    return manager


def build_session(scheduler, wallets, **kwargs) -> VolumeSession:
    kwargs.setdefault("config", fast_session_config())
    return VolumeSession(
        scheduler,
        kwargs.pop("confirmation_manager", mock_confirmation_manager()),
        wallets,
        rng=random.Random(7),
        **kwargs
    )


class TestSessionConfig:
    """Validation of session pacing."""

    def test_defaults(self):
        config = SessionConfig()
        assert config.min_round_interval == 15
        assert config.max_round_interval == 45
        assert config.round_failure_backoff == 5

    def test_rejects_inverted_interval(self):
        with pytest.raises(ValueError):
            SessionConfig(min_round_interval=10, max_round_interval=5)


class TestSessionLifecycle:
    """State transitions and round loop."""

    @pytest.mark.asyncio
    async def test_completes_when_duration_elapses(self, wallets):
        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets[:5], 10))
        session = build_session(scheduler, wallets[:5])

        stats = await session.start(TOKEN, 0.1, TradeProvider.PUMP)

        assert session.state == SessionState.COMPLETED
        assert scheduler.run_round.await_count >= 1
        assert stats.total_trades == 10 * scheduler.run_round.await_count
        assert stats.successful_trades == stats.total_trades
        assert stats.end_time - stats.start_time == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_rounds_use_partitioned_groups(self, wallets):
        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets, 20))
        session = build_session(scheduler, wallets, config=fast_session_config(group_size=4))

        await session.start(TOKEN, 0.01, "jupiter")

        groups, token, provider = scheduler.run_round.await_args.args
        assert [len(group) for group in groups] == [4, 4, 2]
        assert token == TOKEN
        assert provider == TradeProvider.JUPITER

    @pytest.mark.asyncio
    async def test_stop_during_round_finishes_round(self, wallets):
        """Stop lets the in-flight round finish, then no new round starts."""
        round_started = asyncio.Event()
        release = asyncio.Event()

        async def slow_round(groups, token, provider):
            round_started.set()
            await release.wait()
            return round_result(wallets[:5], 10)

        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(side_effect=slow_round)
        confirmation_manager = mock_confirmation_manager()
        session = build_session(scheduler, wallets[:5], confirmation_manager=confirmation_manager)

        task = asyncio.create_task(session.start(TOKEN, 60, TradeProvider.PUMP))
        await round_started.wait()
        assert session.is_running

        session.stop()
        assert session.state == SessionState.STOPPED
        release.set()
        stats = await task

        assert scheduler.run_round.await_count == 1
        assert stats.total_trades == 10
        assert session.state == SessionState.STOPPED
        await asyncio.sleep(0)
        assert confirmation_manager.tracker.cancelled()
        confirmation_manager.stop_block_height_tracking.assert_called()

    @pytest.mark.asyncio
    async def test_stop_interrupts_inter_round_delay(self, wallets):
        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets[:5], 10))
        session = build_session(scheduler, wallets[:5], config=fast_session_config(min_round_interval=30, max_round_interval=30))
        loop = asyncio.get_running_loop()

        started = loop.time()
        task = asyncio.create_task(session.start(TOKEN, 600, TradeProvider.PUMP))
        await wait_until(lambda: scheduler.run_round.await_count == 1)
        await asyncio.sleep(0.01)
        session.stop()
        await task

        assert loop.time() - started < 1
        assert session.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, wallets):
        session = build_session(MagicMock(), wallets[:5])
        session.stop()
        session.stop()
        assert session.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_start_while_running_raises(self, wallets):
        release = asyncio.Event()

        async def slow_round(groups, token, provider):
            await release.wait()
            return round_result(wallets[:5], 10)

        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(side_effect=slow_round)
        session = build_session(scheduler, wallets[:5])
        task = asyncio.create_task(session.start(TOKEN, 60, TradeProvider.PUMP))
        await wait_until(lambda: session.is_running)

        with pytest.raises(SessionAlreadyRunningError):
            await session.start(TOKEN, 60, TradeProvider.PUMP)

        session.stop()
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_start_without_wallets_raises(self):
        session = build_session(MagicMock(), [])
        with pytest.raises(ConfigurationError):
            await session.start(TOKEN, 60, TradeProvider.PUMP)
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_rejects_non_positive_duration(self, wallets):
        session = build_session(MagicMock(), wallets[:2])
        with pytest.raises(ValueError):
            await session.start(TOKEN, 0, TradeProvider.PUMP)


class TestRoundFailures:
    """A failing round never ends the session."""

    @pytest.mark.asyncio
    async def test_failed_round_counts_all_passes_and_backs_off(self, wallets):
        outcomes = [RuntimeError("rpc unreachable"), round_result(wallets[:3], 6)]

        async def run_round(groups, token, provider):
            outcome = outcomes.pop(0) if outcomes else round_result(wallets[:3], 6)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(side_effect=run_round)
        session = build_session(scheduler, wallets[:3], config=fast_session_config(round_failure_backoff=0.05))
        loop = asyncio.get_running_loop()

        task = asyncio.create_task(session.start(TOKEN, 60, TradeProvider.PUMP))
        first_round = loop.time()
        await wait_until(lambda: scheduler.run_round.await_count == 2)
        second_round = loop.time()
        session.stop()
        stats = await task

        assert second_round - first_round >= 0.05
        assert stats.successful_trades == 6
        assert stats.total_trades == 12
        assert stats.success_rate == "6/12"


class TestStatusReporting:
    """Status updates after each round."""

    @pytest.mark.asyncio
    async def test_listener_receives_success_rate(self, wallets):
        updates = []
        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets[:5], 8))
        session = build_session(scheduler, wallets[:5])
        session.add_status_listener(updates.append)

        await session.start(TOKEN, 0.01, TradeProvider.PUMP)

        assert updates[0].success_rate == "8/10"
        assert updates[0].is_running is True
        assert updates[-1].is_running is False
        assert updates[-1].remaining_time == 0

    @pytest.mark.asyncio
    async def test_async_listener_and_listener_errors(self, wallets):
        received = []

        async def async_listener(status):
            received.append(status.success_rate)

        def broken_listener(status):
            raise RuntimeError("chat closed")

        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets[:5], 10))
        session = build_session(scheduler, wallets[:5])
        session.add_status_listener(broken_listener)
        session.add_status_listener(async_listener)

        await session.start(TOKEN, 0.01, TradeProvider.PUMP)

        assert received[0] == "10/10"
        assert session.state == SessionState.COMPLETED

    def test_skipped_sells_are_excluded_from_rate(self, wallets):
        result = round_result(wallets[:2], 3)
        result.pass_results[3] = result.pass_results[3].model_copy(update={"status": PassStatus.SKIPPED})
        stats = SessionStats()
        stats.record_round(result)

        assert stats.total_trades == 4
        assert stats.skipped_trades == 1
        assert stats.success_rate == "3/3"

    @pytest.mark.asyncio
    async def test_publishes_status_events(self, wallets):
        events = EventSystem()
        received = []

        async def record(event):
            received.append(event.data)

        await events.subscribe("session_status", record)
        await events.start()

        scheduler = MagicMock()
        scheduler.run_round = AsyncMock(return_value=round_result(wallets[:5], 10))
        session = build_session(scheduler, wallets[:5], events=events, session_id="abc123")

        await session.start(TOKEN, 0.01, TradeProvider.PUMP)
        await events.flush()
        await events.stop()

        assert received[0]["session_id"] == "abc123"
        assert received[0]["success_rate"] == "10/10"
        assert received[-1]["is_running"] is False
