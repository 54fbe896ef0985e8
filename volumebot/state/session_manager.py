import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from loguru import logger

from volumebot.config import CONVERSATION_TIMEOUT
from volumebot.solana.integration import VolumeBotOrchestrator


@dataclass
class WizardState:
    """Settings collected by the configuration wizard for one user."""
    settings: Dict[str, Any] = field(default_factory=dict)
    touched_at: float = 0.0


@dataclass
class ActiveRun:
    """A volume session started from a chat."""
    orchestrator: VolumeBotOrchestrator
    task: asyncio.Task
    status_message_id: Optional[int] = None


class SessionManager:
    """
    Per-user Telegram state.

    Wizard settings expire after ``timeout`` seconds without activity. Active runs
    never expire; they are dropped once their task finishes.
    """

    def __init__(self, timeout: float = CONVERSATION_TIMEOUT, clock: Callable[[], float] = time.time):
        self.timeout = timeout
        self._clock = clock
        self._wizards: Dict[int, WizardState] = {}
        self._runs: Dict[int, ActiveRun] = {}

    def _is_stale(self, state: WizardState) -> bool:
        return self._clock() - state.touched_at > self.timeout

    def get_settings(self, user_id: int) -> Dict[str, Any]:
        """
        Return a copy of the wizard settings for a user.

        Stale settings are discarded and an empty dict is returned.
        """
        state = self._wizards.get(user_id)
        if state is None:
            return {}

        if self._is_stale(state):
            logger.info(f"Wizard settings expired for user {user_id}")
            self.clear_settings(user_id)
            return {}

        state.touched_at = self._clock()
        return dict(state.settings)

    def get_setting(self, user_id: int, key: str, default: Any = None) -> Any:
        return self.get_settings(user_id).get(key, default)

    def set_setting(self, user_id: int, key: str, value: Any):
        settings = self.get_settings(user_id)
        settings[key] = value
        self._wizards[user_id] = WizardState(settings=settings, touched_at=self._clock())
        logger.bind(user_id=user_id).debug(f"Wizard setting {key} stored for user {user_id}")

    def clear_settings(self, user_id: int):
        self._wizards.pop(user_id, None)

    def expire_stale_settings(self) -> int:
        """Drop every stale wizard state; returns how many were dropped."""
        stale = [user_id for user_id, state in self._wizards.items() if self._is_stale(state)]
        for user_id in stale:
            del self._wizards[user_id]

        if stale:
            logger.info(f"Expired wizard settings for {len(stale)} users")
        return len(stale)

    # Active runs

    def register_run(self, user_id: int, run: ActiveRun):
        self._runs[user_id] = run
        logger.info(f"Registered active run for user {user_id}")

    def get_run(self, user_id: int) -> Optional[ActiveRun]:
        run = self._runs.get(user_id)
        if run is not None and run.task.done():
            del self._runs[user_id]
            return None
        return run

    def pop_run(self, user_id: int) -> Optional[ActiveRun]:
        return self._runs.pop(user_id, None)


session_manager = SessionManager()
