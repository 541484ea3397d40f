"""Snowmix session: one control connection shared by every collection.

This module contains the high-level session with:
- Connection lifecycle and reconnection
- A priority queue and a single command worker, so that exactly one command is
  in flight with the server at a time
- Framing of multi-line responses
- The per-kind collections (audio feeds, audio mixers, audio sinks, texts)

Connection lifecycle events are forwarded from SessionListener."""

import asyncio
import logging
import time
from asyncio import Future, PriorityQueue, Task
from typing import Any, Optional

from pysnowmix.collection import SnowmixItemCollection
from pysnowmix.exceptions import SnowmixConnectionError, SnowmixTimeoutError
from pysnowmix.kinds import AudioFeedCodec, AudioMixerCodec, AudioSinkCodec, TextCodec
from pysnowmix.listener import MultiplexingListener, SnowmixListener
from pysnowmix.protocol import (
    PRIORITY_WRITE,
    SnowmixProtocol,
    is_end_of_response,
    tidy_line,
)

DEFAULT_PORT = 9999


class _Command:
    """A queued command and the future its caller is waiting on."""

    def __init__(self, message: str, future: Future, tidy: bool, expect_multiline: bool, log_level: int):
        self.message = message
        self.future = future
        self.tidy = tidy
        self.expect_multiline = expect_multiline
        self.log_level = log_level
        self.lines: list[str] = []
        self.sent = False

    def resolve(self):
        if self.future.done():
            return
        if self.tidy:
            lines = [tidy_line(line) for line in self.lines]
            self.future.set_result([line for line in lines if line])
        else:
            self.future.set_result(list(self.lines))

    def fail(self, exc: Exception):
        if not self.future.done():
            self.future.set_exception(exc)


class SessionListener(SnowmixListener):
    """Forwards protocol events to the session."""

    def __init__(self, snowmix: 'Snowmix'):
        self._snowmix = snowmix

    def connected(self):
        self._snowmix._on_connected()

    def disconnected(self):
        self._snowmix._on_disconnected()

    def greeting_received(self, version: str):
        self._snowmix.version = version
        self._snowmix._logger.info(f"Snowmix version {version}")

    def status_line_received(self, line: str):
        self._snowmix._status_line_received(line)

    def message_received(self, message: str):
        self._snowmix._logger.info(f"RECV: {message}")


class Snowmix:
    """Client for one Snowmix server.

    This class:
    - Creates and manages the SnowmixProtocol instance
    - Serializes commands through a priority queue and a command worker
    - Collects multi-line responses for the command that asked for them
    - Handles reconnection logic
    - Owns one collection per kind of Snowmix object
    """

    def __init__(self, hostname, port=DEFAULT_PORT, reconnect=True, reconnect_time=10,
                 command_timeout=10.0, min_send_delay=0.0, populate_on_connect=True):
        """Initialize the session.

        Args:
            hostname: Snowmix hostname or IP
            port: Snowmix control port (usually 9999)
            reconnect: Whether to reconnect when the connection is lost
            reconnect_time: Seconds to wait between reconnection attempts
            command_timeout: Seconds to wait for a complete multi-line response
            min_send_delay: Minimum seconds between two commands
            populate_on_connect: Whether to run discovery for every collection once connected
        """
        self._hostname: str = hostname
        self._port = port
        self._reconnect = reconnect
        self._reconnect_time = reconnect_time
        self._command_timeout = command_timeout
        self._min_send_delay_seconds: float = min_send_delay
        self._populate_on_connect = populate_on_connect

        self._logger = logging.getLogger(__name__)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        # Server version from the greeting
        self.version: Optional[str] = None

        # Connection state
        self._connected = False

        # Tasks
        self._command_worker_task: Optional[Task[Any]] = None
        self._reconnect_task: Optional[Task[Any]] = None
        self._populate_task: Optional[Task[Any]] = None

        self._last_send_timestamp: float = 0.0

        # Priority queue to serialize commands (writes jump ahead of discovery reads)
        self._command_queue: PriorityQueue = PriorityQueue()
        self._command_sequence_number: int = 0  # Sequence number for FIFO order within same priority
        # The command the worker is processing; status lines belong to it
        self._current_command: Optional[_Command] = None
        # Resolved once the late reply to a timed-out command has been discarded
        self._late_response_drained: Optional[Future] = None

        # Create multiplexing listener for external listeners
        self._multiplex_callback = MultiplexingListener()

        # Register internal listener to handle responses and connection lifecycle
        self._session_listener = SessionListener(self)
        self._multiplex_callback.register_listener(self._session_listener)

        self._protocol = SnowmixProtocol(self._multiplex_callback)

        self.audio_feeds = SnowmixItemCollection(self, AudioFeedCodec())
        self.audio_mixers = SnowmixItemCollection(self, AudioMixerCodec())
        self.audio_sinks = SnowmixItemCollection(self, AudioSinkCodec())
        self.texts = SnowmixItemCollection(self, TextCodec())

    # ========== Connection lifecycle handlers ==========

    def _on_connected(self):
        """Called by SessionListener when connection is established."""
        self._logger.info("Snowmix connected")
        self._connected = True
        self._loop = asyncio.get_running_loop()

        if self._command_worker_task is not None and not self._command_worker_task.done():
            self._command_worker_task.cancel()
        self._command_worker_task = self._loop.create_task(self._command_worker())

        if self._populate_on_connect:
            self._populate_task = self._loop.create_task(self._populate_after_connect())

    def _on_disconnected(self):
        """Called by SessionListener when connection is lost."""
        self._handle_connection_broken()

    async def _populate_after_connect(self):
        try:
            await self.populate()
        except (SnowmixConnectionError, SnowmixTimeoutError) as e:
            self._logger.error(f"Discovery after connecting failed: {e}")
            self._multiplex_callback.error(f"Discovery failed: {e}")

    # ========== Public API ==========

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def collections(self) -> tuple[SnowmixItemCollection, ...]:
        return (self.audio_feeds, self.audio_mixers, self.audio_sinks, self.texts)

    def register_listener(self, listener: SnowmixListener):
        """Register external listener for session events."""
        self._multiplex_callback.register_listener(listener)

    def unregister_listener(self, listener: SnowmixListener):
        """Unregister external listener."""
        self._multiplex_callback.unregister_listener(listener)

    async def async_connect(self):
        """Connect to the Snowmix server."""
        self._loop = asyncio.get_running_loop()
        await self._loop.create_connection(
            lambda: self._protocol, host=self._hostname, port=self._port
        )

    def close(self):
        """Close the connection and stop reconnection attempts."""
        self._reconnect = False
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        if self._populate_task is not None and not self._populate_task.done():
            self._populate_task.cancel()
        self._protocol.close()

    async def populate(self):
        """Discover every object on the server, one collection after the other."""
        for collection in self.collections:
            await collection.populate()

    async def send_command(self, command: str, tidy: bool = False, expect_multiline: bool = False,
                           log_at_silly_level: bool = False, priority: int = PRIORITY_WRITE):
        """Send one command and wait for it to be processed.

        Args:
            command: The command line, without terminator
            tidy: Strip the STAT: prefix and normalize whitespace of response lines
            expect_multiline: Wait for a multi-line response and return its lines
            log_at_silly_level: Log the exchange at DEBUG instead of INFO
            priority: Queue priority (lower = sooner)

        Returns:
            The response lines for multi-line commands, otherwise None. Snowmix is
            silent when a command succeeds; problems are reported as "MSG:" lines
            to the registered listeners.
        """
        if not self._connected:
            raise SnowmixConnectionError(f"Not connected to {self._hostname}")
        log_level = logging.DEBUG if log_at_silly_level else logging.INFO
        future = asyncio.get_running_loop().create_future()
        self._enqueue_command(_Command(command, future, tidy, expect_multiline, log_level), priority)
        return await future

    # ========== Queue management ==========

    def _enqueue_command(self, command: _Command, priority: int = PRIORITY_WRITE):
        """Queue a command to be sent via the persistent connection."""
        # Safety: make sure the command worker is alive
        if self._command_worker_task is None or self._command_worker_task.done():
            self._logger.warning("Command worker was not running; restarting it")
            self._command_worker_task = asyncio.get_running_loop().create_task(self._command_worker())
        self._command_sequence_number += 1
        self._logger.log(
            command.log_level,
            f"QUEUE: Adding command #{self._command_sequence_number} (priority={priority}): {command.message}",
        )
        self._command_queue.put_nowait((priority, self._command_sequence_number, command))

    async def _command_worker(self):
        """Worker task that processes all outgoing commands from the priority queue."""
        while True:
            try:
                priority, sequence_number, command = await self._command_queue.get()
                self._current_command = command
                try:
                    await self._process_command(sequence_number, command)
                finally:
                    self._current_command = None
                    self._command_queue.task_done()
            except asyncio.CancelledError:
                self._logger.debug("Command worker cancelled")
                break

    async def _process_command(self, sequence_number: int, command: _Command):
        if command.future.done():
            self._logger.debug(f"[WORKER] Command #{sequence_number} was abandoned, not sending")
            return

        if command.expect_multiline and not await self._wait_for_late_response(sequence_number, command):
            return

        # Enforce minimum delay between commands
        time_since_last_send = time.time() - self._last_send_timestamp
        if time_since_last_send < self._min_send_delay_seconds:
            wait_time = self._min_send_delay_seconds - time_since_last_send
            self._logger.debug(f"Waiting {wait_time:.2f}s before sending command")
            await asyncio.sleep(wait_time)

        try:
            self._logger.log(command.log_level, f"SEND: Command #{sequence_number}: {command.message}")
            self._protocol.write(command.message)
        except SnowmixConnectionError as e:
            self._logger.error(f"SEND FAILED: Command #{sequence_number} - {e}")
            command.fail(e)
            return
        command.sent = True
        self._last_send_timestamp = time.time()

        if not command.expect_multiline:
            if not command.future.done():
                command.future.set_result(None)
            return

        done, _ = await asyncio.wait({command.future}, timeout=self._command_timeout)
        if not done:
            message = f"No complete response to {command.message!r} within {self._command_timeout}s"
            self._logger.error(message)
            self._multiplex_callback.error(message)
            command.fail(SnowmixTimeoutError(message))
            # Its reply may still arrive and must not be taken for the next one
            self._late_response_drained = asyncio.get_running_loop().create_future()

    async def _wait_for_late_response(self, sequence_number: int, command: _Command) -> bool:
        """Hold a multi-line command back until the reply to a timed-out one is discarded.

        Returns False, after dropping the connection, when that reply never completes.
        """
        drained = self._late_response_drained
        if drained is None or drained.done():
            return True
        self._logger.debug(f"[WORKER] Command #{sequence_number} waits for a late response to be discarded")
        done, _ = await asyncio.wait({drained}, timeout=self._command_timeout)
        if done:
            return True
        message = f"Responses from {self._hostname} are out of step; dropping the connection"
        self._logger.error(message)
        self._multiplex_callback.error(message)
        command.fail(SnowmixConnectionError(message))
        self._protocol.close()
        return False

    def _status_line_received(self, line: str):
        """Collect a status line for the command waiting on a multi-line response."""
        drained = self._late_response_drained
        if drained is not None and not drained.done():
            if is_end_of_response(line):
                self._logger.debug("Discarded the end of a late response")
                drained.set_result(None)
            else:
                self._logger.debug(f"Discarding late status line: {line}")
            return
        command = self._current_command
        if command is None or not command.expect_multiline or not command.sent or command.future.done():
            self._logger.debug(f"Ignoring unsolicited status line: {line}")
            return
        if is_end_of_response(line):
            self._logger.log(
                command.log_level, f"RECV: {len(command.lines)} line(s) in response to {command.message}"
            )
            command.resolve()
            return
        command.lines.append(line)

    def _fail_pending_commands(self, exc: Exception):
        """Fail the command being processed and everything still queued."""
        if self._current_command is not None:
            self._current_command.fail(exc)
            self._current_command = None
        while not self._command_queue.empty():
            _, _, command = self._command_queue.get_nowait()
            command.fail(exc)
            self._command_queue.task_done()

    # ========== Reconnection ==========

    async def _wait_to_reconnect(self):
        """Attempt to reconnect after connection loss."""
        while not self._connected and self._reconnect:
            await asyncio.sleep(self._reconnect_time)
            try:
                await self.async_connect()
            except OSError as e:
                self._logger.warning(f"Reconnect attempt failed: {e}")

    def _handle_connection_broken(self):
        """Handle connection loss: fail outstanding commands and schedule a reconnection."""
        self._connected = False
        self._late_response_drained = None
        if self._command_worker_task is not None:
            self._command_worker_task.cancel()
        if self._populate_task is not None and not self._populate_task.done():
            self._populate_task.cancel()
        self._fail_pending_commands(SnowmixConnectionError(f"Connection to {self._hostname} lost"))

        disconnected_message = f"Disconnected from {self._hostname}"
        if self._reconnect:
            self._logger.error(
                disconnected_message + f" will try to reconnect in {self._reconnect_time} seconds"
            )
            self._reconnect_task = asyncio.get_running_loop().create_task(self._wait_to_reconnect())
        else:
            # Only info in here as close has been called.
            self._logger.info(disconnected_message + " not reconnecting")
