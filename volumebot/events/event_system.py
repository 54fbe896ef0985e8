import asyncio
import time
from typing import Dict, List, Any, Optional, Callable, Awaitable
from loguru import logger


class Event:
    """A typed payload dispatched to every subscriber of its event type."""

    def __init__(self, event_type: str, data: Dict[str, Any]):
        self.event_type = event_type
        self.data = data
        self.timestamp = time.time()

    def __str__(self) -> str:
        return f"Event(type={self.event_type}, data={self.data})"


class SessionStatusEvent(Event):
    """Event emitted whenever a volume session reports its progress."""

    def __init__(self, session_id: str, success_rate: str, remaining_time: int, is_running: bool):
        """
        Initialize a session status event.

        Args:
            session_id: Session identifier
            success_rate: Successful over attempted trades, e.g. "8/10"
            remaining_time: Whole seconds left in the session
            is_running: Whether the session loop is still active
        """
        super().__init__("session_status", {
            "session_id": session_id,
            "success_rate": success_rate,
            "remaining_time": remaining_time,
            "is_running": is_running
        })


class TradeConfirmedEvent(Event):
    """Event emitted when a buy or sell pass is confirmed."""

    def __init__(self, signature: str, wallet_address: str, action: str, provider: str):
        super().__init__("trade_confirmed", {
            "signature": signature,
            "wallet": wallet_address,
            "action": action,
            "provider": provider,
            "status": "confirmed"
        })


class TradeFailedEvent(Event):
    """Event emitted when a buy or sell pass fails, expires or times out."""

    def __init__(
        self,
        wallet_address: str,
        action: str,
        error: str,
        signature: Optional[str] = None,
        status: str = "failed"
    ):
        """
        Initialize a trade failed event.

        Args:
            wallet_address: Trader wallet address
            action: "buy" or "sell"
            error: Error message
            signature: Transaction signature if the transaction was submitted
            status: Terminal pass status (failed, expired, timed_out)
        """
        super().__init__("trade_failed", {
            "signature": signature,
            "wallet": wallet_address,
            "action": action,
            "error": error,
            "status": status
        })


class TradeSkippedEvent(Event):
    """Event emitted when a sell pass is skipped because the wallet holds no tokens."""

    def __init__(self, wallet_address: str, mint: str):
        super().__init__("trade_skipped", {
            "wallet": wallet_address,
            "mint": mint,
            "action": "sell",
            "status": "skipped"
        })


class EventSystem:
    """
    In-process publish/subscribe bus.

    Published events are queued and dispatched by a background task. Subscriber
    errors are logged and do not stop dispatch.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Event], Awaitable[None]]]] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._running = False
        self._background_task = None

    @property
    def running(self) -> bool:
        return self._running

    def _get_queue(self) -> asyncio.Queue:
        # Created lazily so the queue binds to the running loop
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    async def subscribe(self, event_type: str, callback: Callable[[Event], Awaitable[None]]):
        """Register an async callback for one event type."""
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to {event_type} events")

    async def unsubscribe(self, event_type: str, callback: Callable[[Event], Awaitable[None]]):
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug(f"Unsubscribed from {event_type} events")

    async def publish(self, event: Event):
        """Queue an event for dispatch."""
        await self._get_queue().put(event)
        logger.debug(f"Published {event.event_type} event")

    async def _process_events(self):
        """Dispatch queued events until stopped."""
        queue = self._get_queue()
        while self._running:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                logger.debug("Event processing task cancelled")
                break

            try:
                logger.debug(f"Processing {event.event_type} event")

                subscribers = list(self._subscribers.get(event.event_type, []))
                if subscribers:
                    results = await asyncio.gather(
                        *(sub(event) for sub in subscribers),
                        return_exceptions=True
                    )
                    for result in results:
                        if isinstance(result, Exception):
                            logger.error(f"Error in {event.event_type} subscriber: {str(result)}")

            except asyncio.CancelledError:
                logger.debug("Event processing task cancelled")
                break

            except Exception as e:
                logger.error(f"Error processing event: {str(e)}")

            finally:
                queue.task_done()

    async def flush(self):
        """Wait until every published event has been dispatched."""
        if self._running:
            await self._get_queue().join()

    async def start(self):
        """Start dispatching in a background task."""
        if self._running:
            return

        self._running = True
        self._background_task = asyncio.create_task(self._process_events())
        logger.info("Event system started")

    async def stop(self):
        """Cancel the dispatcher and drop undelivered events."""
        if not self._running:
            return

        self._running = False
        if self._background_task:
            self._background_task.cancel()
            try:
                await self._background_task
            except asyncio.CancelledError:
                pass
            self._background_task = None

        # Drop anything left so a restart on another loop starts clean
        self._queue = None
        logger.info("Event system stopped")


# Singleton instance
event_system = EventSystem()
