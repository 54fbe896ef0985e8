from volumebot.events.event_system import (
    Event,
    EventSystem,
    SessionStatusEvent,
    TradeConfirmedEvent,
    TradeFailedEvent,
    TradeSkippedEvent,
    event_system,
)
