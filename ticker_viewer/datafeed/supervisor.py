"""
Reconnect/backoff supervisor for one real-time connection.

States:
    idle -> connecting -> open -> closed -> reconnecting -> connecting ...
                                         `-> unavailable (finite budget spent)
    any  -> stopped (stop())

Handles:
1. Connect with a fixed timeout (timeout == failed attempt)
2. Subscribe payload on open, backoff reset
3. In-order message dispatch to a provider parser
4. Exponential backoff: delay(n) = min(base * 2^n, cap)
5. Idempotent teardown of the socket and every pending timer

The supervisor does NOT interpret messages; it hands raw text to on_message.
A ParseError from the handler drops that one message and nothing else.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..errors import ConnectTimeout, ExhaustedRetries, ParseError, TransportError
from ..types import SupervisorState
from .transport import Connection, Transport

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], None]
StateListener = Callable[[SupervisorState], None]
SubscribePayload = Callable[[], Optional[str]]
Sleep = Callable[[float], Awaitable[None]]


def backoff_delay_ms(attempt: int, base_delay_ms: float, cap_delay_ms: float) -> float:
    """Delay before reconnect attempt `attempt` (0-indexed), capped."""
    return min(base_delay_ms * (2 ** attempt), cap_delay_ms)


class BackoffState:
    """
    Consecutive-failure counter with an optional finite budget.

    Example:
        >>> b = BackoffState(1000, 30000)
        >>> [b.next_delay_ms() for _ in range(7)]
        [1000, 2000, 4000, 8000, 16000, 30000, 30000]
    """

    __slots__ = ('attempt_count', 'max_attempts', 'base_delay_ms', 'cap_delay_ms')

    def __init__(
        self,
        base_delay_ms: float = 1000,
        cap_delay_ms: float = 30000,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.base_delay_ms = base_delay_ms
        self.cap_delay_ms = cap_delay_ms
        self.max_attempts = max_attempts  # None = unbounded
        self.attempt_count = 0

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempt_count >= self.max_attempts

    def next_delay_ms(self) -> Optional[float]:
        """
        Record one failed attempt.

        Returns the delay before the next attempt, or None once the budget is spent.
        """
        delay = backoff_delay_ms(self.attempt_count, self.base_delay_ms, self.cap_delay_ms)
        self.attempt_count += 1
        if self.exhausted:
            return None
        return delay

    def reset(self) -> None:
        self.attempt_count = 0


class ConnectionSupervisor:
    """
    Owns exactly one logical real-time connection with automatic recovery.

    Usage:
        supervisor = ConnectionSupervisor(
            url="wss://ws-feed.exchange.coinbase.com",
            transport=AiohttpTransport(),
            on_message=parser_callback,
            subscribe=lambda: '{"type": "subscribe", ...}',
            max_attempts=3,
        )
        supervisor.start()
        ...
        await supervisor.stop()

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        url: str,
        transport: Transport,
        on_message: MessageHandler,
        *,
        subscribe: Optional[SubscribePayload] = None,
        on_state_change: Optional[StateListener] = None,
        base_delay_ms: float = 1000,
        cap_delay_ms: float = 30000,
        max_attempts: Optional[int] = None,
        connect_timeout_ms: float = 5000,
        name: str = "connection",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.url = url
        self.name = name
        self.connect_timeout_ms = connect_timeout_ms
        self.backoff = BackoffState(base_delay_ms, cap_delay_ms, max_attempts)

        self._transport = transport
        self._on_message = on_message
        self._subscribe = subscribe
        self._on_state_change = on_state_change
        self._sleep = sleep

        self._state = SupervisorState.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self._connection: Optional[Connection] = None

        # Diagnostics
        self.last_error: Optional[Exception] = None
        self.connect_attempts = 0
        self.messages_received = 0
        self.messages_dropped = 0

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SupervisorState.OPEN

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def attempt_count(self) -> int:
        return self.backoff.attempt_count

    def _set_state(self, new_state: SupervisorState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state == new_state:
            return

        logger.debug(f"[{self.name}] State: {old_state.value} -> {new_state.value}")
        if self._on_state_change:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.warning(f"[{self.name}] State change callback error: {e}")

    def start(self) -> None:
        """Begin connecting. Restarting after stop() or unavailable resets the backoff."""
        if self.is_running:
            return

        self.backoff.reset()
        self.last_error = None
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-supervisor")

    async def stop(self) -> None:
        """Cancel pending timers, close the transport. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_connection()

        if self._state != SupervisorState.STOPPED:
            self._set_state(SupervisorState.STOPPED)
            logger.info(f"[{self.name}] Stopped")

    async def __aenter__(self) -> ConnectionSupervisor:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        try:
            while True:
                await self._attempt()

                delay_ms = self.backoff.next_delay_ms()
                if delay_ms is None:
                    self.last_error = ExhaustedRetries(
                        f"giving up after {self.backoff.attempt_count} consecutive failures",
                        attempts=self.backoff.attempt_count,
                        component=self.name,
                    )
                    logger.error(f"[{self.name}] {self.last_error}")
                    self._set_state(SupervisorState.UNAVAILABLE)
                    return

                self._set_state(SupervisorState.RECONNECTING)
                logger.info(
                    f"[{self.name}] Reconnecting in {delay_ms / 1000:.2f}s "
                    f"(attempt {self.backoff.attempt_count})"
                )
                await self._sleep(delay_ms / 1000)
        finally:
            await self._close_connection()

    async def _attempt(self) -> None:
        """One connect + receive cycle. Returns when the connection is gone."""
        self._set_state(SupervisorState.CONNECTING)
        self.connect_attempts += 1

        try:
            self._connection = await asyncio.wait_for(
                self._transport.connect(self.url),
                timeout=self.connect_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            self.last_error = ConnectTimeout(
                f"not open after {self.connect_timeout_ms:.0f}ms",
                url=self.url,
                component=self.name,
            )
            logger.warning(f"[{self.name}] Connect timed out: {self.last_error}")
            return
        except TransportError as e:
            self.last_error = e
            logger.warning(f"[{self.name}] Connect failed: {e}")
            return
        except Exception as e:
            self.last_error = TransportError(str(e), url=self.url, component=self.name)
            logger.warning(f"[{self.name}] Connect failed: {e}")
            return

        try:
            payload = self._subscribe() if self._subscribe is not None else None
            if payload is not None:
                await self._connection.send(payload)

            self.backoff.reset()
            self._set_state(SupervisorState.OPEN)
            logger.info(f"[{self.name}] Connected to {self.url}")

            await self._receive_loop(self._connection)
        except TransportError as e:
            self.last_error = e
            logger.warning(f"[{self.name}] Connection lost: {e}")
        finally:
            await self._close_connection()

        self._set_state(SupervisorState.CLOSED)

    async def _receive_loop(self, connection: Connection) -> None:
        while True:
            try:
                raw = await connection.receive()
            except TransportError:
                raise
            except Exception as e:
                raise TransportError(str(e), url=self.url, component=self.name) from e

            if raw is None:
                logger.info(f"[{self.name}] Connection closed by peer")
                return

            self._dispatch(raw)

    def _dispatch(self, raw: str) -> None:
        """Hand one message to the parser. Bad messages are dropped, never fatal."""
        self.messages_received += 1
        try:
            self._on_message(raw)
        except ParseError as e:
            self.messages_dropped += 1
            logger.warning(f"[{self.name}] Dropping malformed message: {e}")
        except Exception as e:
            self.messages_dropped += 1
            logger.error(f"[{self.name}] Message handling error: {e}")

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"[{self.name}] Error while closing connection: {e}")
