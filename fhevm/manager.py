"""
Session Lifecycle Manager
=========================
Owns the one EncryptionSession of a connected wallet.

    IDLE -> INITIALIZING -> READY
    IDLE -> INITIALIZING -> FAILED -> IDLE

initialize() is single-flight: while an attempt is in flight every caller
awaits that attempt's outcome. Cancellation returns to IDLE without
recording an error; any other failure records one and allows a retry.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from config.config import SystemConfig

from .cancellation import CancellationToken
from .errors import AbortError, SessionNotReadyError
from .session import EncryptionSession, create_encryption_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., Awaitable[EncryptionSession]]
StateListener = Callable[['SessionState'], None]


class SessionState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class SessionManager:
    """Sole writer of the encryption session; everything else borrows it"""

    def __init__(self, session_factory: Optional[SessionFactory] = None,
                 config: Optional[SystemConfig] = None):
        self.config = config or SystemConfig()
        self._factory = session_factory or self._default_factory
        self._state = SessionState.IDLE
        self._session: Optional[EncryptionSession] = None
        self._task: Optional[asyncio.Future] = None
        self._token: Optional[CancellationToken] = None
        self._listeners: List[StateListener] = []
        self.error: Optional[str] = None

    async def _default_factory(self, provider: Any, token: CancellationToken) -> EncryptionSession:
        return await create_encryption_session(
            provider,
            token=token,
            mock_chains=self.config.network.mock_chains,
            relayer=self.config.relayer,
            probe_timeout=self.config.network.probe_timeout)

    # ------------------------------------------------------------------
    # observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[EncryptionSession]:
        return self._session

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY and self._session is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(state)`` on every transition; returns the unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SessionState):
        if state is self._state:
            return
        logger.debug(f"Encryption session: {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session state listener failed")

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, provider: Any) -> Optional[EncryptionSession]:
        """Ready session, or None when the attempt was cancelled or failed (see ``error``)"""
        if self._state is SessionState.READY:
            return self._session

        if self._state is not SessionState.INITIALIZING or self._task is None:
            token = CancellationToken()
            self._token = token
            self.error = None
            self._set_state(SessionState.INITIALIZING)
            self._task = asyncio.ensure_future(self._attempt(provider, token))

        return await asyncio.shield(self._task)

    async def _attempt(self, provider: Any, token: CancellationToken) -> Optional[EncryptionSession]:
        try:
            session = await self._factory(provider, token=token)
        except AbortError:
            logger.debug("Encryption session initialization aborted")
            if self._token is token:
                self._finish(SessionState.IDLE)
            return None
        except Exception as e:
            logger.error(f"Encryption session initialization failed: {e}")
            if self._token is token:
                self.error = str(e) or type(e).__name__
                self._finish(SessionState.FAILED)
                self._set_state(SessionState.IDLE)
            return None

        if token.cancelled or self._token is not token:
            # torn down while the factory was finishing
            await session.invalidate()
            if self._token is token:
                logger.debug("Encryption session initialization aborted")
                self._finish(SessionState.IDLE)
            return None

        self._session = session
        self._finish(SessionState.READY)
        return session

    def _finish(self, state: SessionState):
        self._task = None
        self._token = None
        self._set_state(state)

    def abort(self, reason: str = "teardown"):
        """Cancel the in-flight initialization, if any"""
        if self._token is not None:
            self._token.cancel(reason)

    async def reset(self, reason: str = "reset"):
        """Discard the session (wallet disconnected or network changed)"""
        self.abort(reason)
        session, self._session = self._session, None
        self._task = None
        self._token = None
        if session is not None:
            await session.invalidate()
            logger.info(f"Encryption session discarded ({reason})")
        self._set_state(SessionState.IDLE)

    def require_session(self) -> EncryptionSession:
        if not self.is_ready:
            detail = f": {self.error}" if self.error else ""
            raise SessionNotReadyError(f"Encryption session is not ready{detail}")
        return self._session
