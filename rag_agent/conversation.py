import asyncio
import logging
from collections import OrderedDict
from typing import List, Tuple

from .models import ConversationTurn, Role

logger = logging.getLogger(__name__)


class ConversationHistory:
    """Ordered user/assistant turns of one session.

    Turns are only added in pairs, under the history's lock, so concurrent
    requests on the same session cannot interleave half-exchanges.
    """

    def __init__(self) -> None:
        self._turns: List[ConversationTurn] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._turns)

    def snapshot(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    async def append_exchange(self, user_text: str, assistant_text: str) -> int:
        """Append a user turn followed by the assistant's answer; returns the new length."""
        async with self._lock:
            self._turns.append(ConversationTurn(role=Role.USER, text=user_text))
            self._turns.append(ConversationTurn(role=Role.ASSISTANT, text=assistant_text))
            return len(self._turns)

    async def clear(self) -> None:
        async with self._lock:
            self._turns.clear()


class SessionStore:
    """Conversation histories keyed by session id.

    At most ``max_sessions`` histories are kept; starting a new session
    beyond that drops the least recently used one.
    """

    def __init__(self, max_sessions: int = 1000) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, ConversationHistory]" = OrderedDict()

    def get(self, session_id: str) -> ConversationHistory:
        history = self._sessions.get(session_id)
        if history is not None:
            self._sessions.move_to_end(session_id)
            return history

        history = ConversationHistory()
        self._sessions[session_id] = history
        logger.debug(f"Started conversation for session '{session_id}'")
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(f"Session limit of {self.max_sessions} reached, dropped session '{evicted}'")
        return history

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def reset(self, session_id: str) -> None:
        """Forget a session; a later request with the same id starts empty."""
        history = self._sessions.pop(session_id, None)
        if history is not None:
            await history.clear()

    async def reset_all(self) -> None:
        histories = list(self._sessions.values())
        self._sessions.clear()
        for history in histories:
            await history.clear()
