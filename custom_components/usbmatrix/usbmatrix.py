"""Core TCP client for USB / video crosspoint matrices.

This module intentionally contains **no** HomeAssistant dependencies so it can
be reused as a standalone library. HomeAssistant specific glue code lives in
the platform files (e.g. ``sensor.py``, ``select.py``).
"""

from __future__ import annotations

import asyncio
import enum
import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

import voluptuous as vol

from .const import *
from .profiles import DeviceProfile, build_device_profile
from .protocol import CommandEncoder, LineFramer, ResponseParser
from .state import RoutingState

LOGGER = logging.getLogger(__name__)

EventCallback = Callable[[Dict[str, Any]], None]


async def tcp_send_message(writer: asyncio.StreamWriter, message: bytes) -> None:
    """Send one encoded command over the TCP stream."""

    LOGGER.debug("TCP TX: %r", message)
    writer.write(message)
    await writer.drain()


def variable_id(level_id: str, output: int) -> str:
    """Name under which the input routed to ``output`` is published."""
    return f"output_{level_id}_{output}"


def valid_ipv4(value: Any) -> str:
    """Voluptuous validator for a dotted IPv4 address."""

    try:
        return str(ipaddress.IPv4Address(str(value).strip()))
    except ValueError as exc:
        raise vol.Invalid(f"{value!r} is not a valid IPv4 address") from exc


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): valid_ipv4,
        vol.Optional(CONF_DEVICE_TYPE, default=DEFAULT_DEVICE_TYPE): vol.Coerce(int),
        vol.Optional(CONF_FRAME, default=DEFAULT_FRAME): vol.All(str, vol.Match(r"^\d\d$")),
        vol.Optional(CONF_TCP_PORT, default=DEFAULT_TCP_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_POLL_INTERVAL, default=DEFAULT_POLL_INTERVAL): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(CONF_RECONNECT_DELAY, default=DEFAULT_MIN_RECONNECT_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(CONF_MAX_RECONNECT_DELAY, default=DEFAULT_MAX_RECONNECT_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass
class UsbMatrixConfig:
    """Configuration for a matrix connection and polling behaviour."""

    host: str
    device_type: int = DEFAULT_DEVICE_TYPE
    frame: str = DEFAULT_FRAME
    tcp_port: int = DEFAULT_TCP_PORT
    poll_interval: float = DEFAULT_POLL_INTERVAL  # seconds; full status re-query while connected
    reconnect_delay: float = DEFAULT_MIN_RECONNECT_DELAY
    max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsbMatrixConfig":
        """Validate a raw mapping (e.g. config entry data) into a config.

        Raises ``vol.Invalid`` if a value is unusable.
        """

        return cls(**CONFIG_SCHEMA(dict(data)))


class ConnectionStatus(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class usbmatrix_device_instance:
    """Connection manager for a single matrix.

    This class owns the TCP connection, the routing state mirror and the
    background reader / polling tasks. Callers can await ``start()``/``stop()``
    and subscribe to updates with ``register_callback`` (no arguments, for
    entities) or ``register_event_callback`` (receives a payload describing
    what changed).
    """

    def __init__(self, config: UsbMatrixConfig) -> None:
        hostname = config.host
        LOGGER.debug("[%s] Initialising matrix instance", hostname)
        LOGGER.debug(
            "[%s] Configuration: TCP port=%s, device type=%s, frame=%s, poll_interval=%s, reconnect_delay=%s, max_reconnect_delay=%s",
            hostname,
            config.tcp_port,
            config.device_type,
            config.frame,
            config.poll_interval,
            config.reconnect_delay,
            config.max_reconnect_delay,
        )

        self._config: UsbMatrixConfig = config
        self._hostname: str = hostname
        self._id: str = f"usbmatrix-{hostname.lower()}"

        self.device: DeviceProfile = build_device_profile(config.device_type)
        self.state: RoutingState = RoutingState(self.device)
        self.framer: LineFramer = LineFramer(MAX_BUFFER_LENGTH, name=hostname)
        self.encoder: CommandEncoder
        self.parser: ResponseParser
        self._build_protocol()

        # Values published to the presentation layer, see variable_id()
        self.variables: Dict[str, Any] = {}

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

        self.status: ConnectionStatus = ConnectionStatus.DISCONNECTED
        self.status_message: Optional[str] = None
        self._monitor_task: Optional[asyncio.Task[Any]] = None
        self._poll_task: Optional[asyncio.Task[Any]] = None
        self._stop_event: asyncio.Event = asyncio.Event()

        self.reconnect_attempts: int = 0
        self._reconnect_delay: float = config.reconnect_delay

        # Timestamp of the last data received from the matrix
        self.last_message_received: Optional[datetime] = None

        self._callbacks: Set[Callable[[], None]] = set()
        self._event_callbacks: Set[EventCallback] = set()

        self._init_variables()
        LOGGER.debug("[%s] Matrix instance initialised as %s", hostname, self.device.name)

    def _build_protocol(self) -> None:
        self.encoder = CommandEncoder(self.device, self._config.frame)
        self.parser = ResponseParser(self.device, self.state, self._config.frame, name=self._hostname)

    @property
    def config(self) -> UsbMatrixConfig:
        return self._config

    @property
    def online(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    # ------------------------------------------------------------------
    # Publishing to the presentation layer
    # ------------------------------------------------------------------

    def register_callback(self, callback: Callable[[], None]) -> None:
        """Register callback, called whenever published state changes."""
        self._callbacks.add(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Remove previously registered callback."""
        self._callbacks.discard(callback)

    def register_event_callback(self, callback: EventCallback) -> None:
        """Register a callback receiving ``{"type": ..., ...}`` payloads.

        Types are ``variables`` (``values``), ``feedbacks`` (``feedbacks``) and
        ``status`` (``status``, ``message``).
        """
        self._event_callbacks.add(callback)

    def remove_event_callback(self, callback: EventCallback) -> None:
        self._event_callbacks.discard(callback)

    def _dispatch(self, payload: Dict[str, Any]) -> None:
        for cb in list(self._event_callbacks):
            try:
                cb(payload)
            except Exception as exc:
                LOGGER.error("[%s] Event callback failed: %s", self._hostname, exc)
        for cb in list(self._callbacks):
            try:
                cb()
            except Exception as exc:
                LOGGER.error("[%s] State callback failed: %s", self._hostname, exc)

    def set_variable_values(self, values: Dict[str, Any]) -> None:
        self.variables.update(values)
        self._dispatch({"type": "variables", "values": dict(values)})

    def check_feedbacks(self, *feedbacks: str) -> None:
        self._dispatch({"type": "feedbacks", "feedbacks": list(feedbacks)})

    def _init_variables(self) -> None:
        """Publish the device name and every crosspoint of the current profile."""

        self.variables = {}
        values: Dict[str, Any] = {"devicename": self.device.name}
        for level in self.device.levels:
            for output in range(1, self.device.outputs + 1):
                values[variable_id(level.id, output)] = self.state.crosspoints[level.id][output]
        self.set_variable_values(values)

    def _set_status(self, status: ConnectionStatus, message: Optional[str] = None) -> None:
        """Move the connection state machine and run entry / exit actions."""

        previous = self.status
        self.status = status
        self.status_message = message
        if status is ConnectionStatus.CONNECTED:
            self._start_polling()
        else:
            self._stop_polling()
        if previous is not status:
            LOGGER.debug("[%s] Connection status %s -> %s", self._hostname, previous.value, status.value)
            self._dispatch({"type": "status", "status": status, "message": message})

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------

    async def async_test_connection(self) -> bool:
        """Test that the control port of the matrix accepts connections."""

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self._hostname, self._config.tcp_port),
                timeout=CONNECTION_TEST_TIMEOUT_TCP,
            )
        except asyncio.TimeoutError:
            LOGGER.error(
                "[%s] TCP connection to port %d timed out",
                self._hostname,
                self._config.tcp_port,
            )
            return False
        except OSError as exc:
            LOGGER.error(
                "[%s] TCP connection to port %d failed: %s",
                self._hostname,
                self._config.tcp_port,
                exc,
            )
            return False

        LOGGER.debug("[%s] TCP connection test successful", self._hostname)
        try:
            writer.close()
            await writer.wait_closed()
        except OSError:
            LOGGER.warning("[%s] Error while closing test TCP connection", self._hostname)
        return True

    async def start(self) -> None:
        """Start connecting to the matrix in the background.

        This method is idempotent.
        """

        if self._monitor_task and not self._monitor_task.done():
            return

        self._stop_event.clear()
        self._reconnect_delay = self._config.reconnect_delay
        loop = asyncio.get_running_loop()
        LOGGER.debug("[%s] Starting monitor loop", self._hostname)
        self._monitor_task = loop.create_task(self._monitor_loop(), name=f"usbmatrix-monitor-{self._hostname}")

    async def stop(self) -> None:
        """Stop polling and the reader task, then close the TCP connection.

        Safe to call repeatedly.
        """

        self._stop_event.set()
        tasks = [task for task in (self._stop_polling(), self._monitor_task) if task is not None]
        self._monitor_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self._close_connection()
        self._set_status(ConnectionStatus.DISCONNECTED)
        LOGGER.debug("[%s] Matrix instance stopped", self._hostname)

    async def async_update_config(self, config: UsbMatrixConfig) -> None:
        """Apply a new configuration.

        A device type change rebuilds the profile and resets the routing
        state; a host, port or device type change replaces the TCP session.
        ``_id`` keeps the host the instance was created with, so entity unique
        IDs and the device registry entry survive a move to a new address.
        """

        old_config = self._config
        self._config = config
        type_changed = config.device_type != old_config.device_type

        if type_changed:
            LOGGER.info("[%s] Device type changed to %s", self._hostname, config.device_type)
            self.device = build_device_profile(config.device_type)
            self.state.reset(self.device)
            self._init_variables()
            self.check_feedbacks(FEEDBACK_ROUTE, FEEDBACK_SOURCE_SELECTED, FEEDBACK_DESTINATION_SELECTED)

        reconnect = (
            type_changed
            or config.host != old_config.host
            or config.tcp_port != old_config.tcp_port
            or self._monitor_task is None
        )
        if reconnect:
            await self.stop()
            self._hostname = config.host
            self.framer = LineFramer(MAX_BUFFER_LENGTH, name=config.host)

        self._build_protocol()

        if reconnect:
            await self.start()
        elif config.poll_interval != old_config.poll_interval and self.online:
            self._start_polling()

    async def _ensure_connected(self) -> None:
        """Ensure there is an active TCP connection to the matrix.

        Handles initial connection and re-connects with exponential backoff on
        failure. Returns once connected or when a stop was requested.
        """

        if self.online and self.reader is not None and self.writer is not None:
            return

        while not self._stop_event.is_set():
            LOGGER.debug(
                "[%s] Establishing TCP connection to %s on port %s",
                self._hostname,
                self._hostname,
                self._config.tcp_port,
            )
            self._set_status(ConnectionStatus.CONNECTING)
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(self._hostname, self._config.tcp_port),
                    timeout=CONNECTION_TEST_TIMEOUT_TCP,
                )
            except (asyncio.TimeoutError, OSError) as exc:
                LOGGER.error(
                    "[%s] Network error: unable to establish TCP connection: %s",
                    self._hostname,
                    exc,
                )
                self._set_status(ConnectionStatus.DISCONNECTED, f"Network error: {exc}")
            else:
                self.reader = reader
                self.writer = writer
                self.reconnect_attempts = 0
                self._reconnect_delay = self._config.reconnect_delay
                self.framer.reset()
                LOGGER.info("[%s] Connection to device %s established.", self._hostname, self._hostname)
                self._set_status(ConnectionStatus.CONNECTED)
                # Get initial status of all crosspoints
                await self.query_routes()
                return

            self.reconnect_attempts += 1
            LOGGER.info(
                "[%s] Retrying TCP connection in %.1fs",
                self._hostname,
                self._reconnect_delay,
            )
            try:
                # Wait for _reconnect_delay seconds or until stop() is called
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._reconnect_delay)
                return
            except asyncio.TimeoutError:
                pass

            self._reconnect_delay = min(
                self._reconnect_delay * 2, self._config.max_reconnect_delay
            )

    async def _close_connection(self) -> None:
        writer = self.writer
        self.reader = None
        self.writer = None
        self.framer.reset()
        if writer is not None:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError) as exc:
                LOGGER.debug("[%s] Error while closing TCP connection: %s", self._hostname, exc)

    async def _drop_connection(self, message: str) -> None:
        self._set_status(ConnectionStatus.DISCONNECTED, message)
        await self._close_connection()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _start_polling(self) -> None:
        if self._poll_task is not None:
            self._stop_polling()
        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop(), name=f"usbmatrix-poll-{self._hostname}")

    def _stop_polling(self) -> Optional[asyncio.Task[Any]]:
        """Cancel the poll task if there is one; returns it for awaiting."""

        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _poll_loop(self) -> None:
        """Periodically re-query the full crosspoint status."""

        interval = self._config.poll_interval
        LOGGER.debug("[%s] Poll loop starting with interval=%s", self._hostname, interval)
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    # Stop requested while waiting
                    break
                except asyncio.TimeoutError:
                    pass

                if not self.online:
                    break
                await self.query_routes()
        except asyncio.CancelledError:
            LOGGER.debug("[%s] Poll loop cancelled", self._hostname)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def _monitor_loop(self) -> None:
        """Continuously read from the TCP stream and dispatch complete lines.

        This loop self-recovers by re-establishing the TCP connection whenever
        the reader hits EOF or raises an error.
        """

        try:
            while not self._stop_event.is_set():
                await self._ensure_connected()
                if self._stop_event.is_set():
                    break
                if not self.online or self.reader is None:
                    # Session dropped right after connecting, retry after the backoff delay
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), timeout=self._reconnect_delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                try:
                    chunk = await self.reader.read(READ_CHUNK_SIZE)
                except OSError as exc:
                    LOGGER.error("[%s] Network error: %s - will reconnect", self._hostname, exc)
                    await self._drop_connection(f"Network error: {exc}")
                    continue

                if not chunk:
                    LOGGER.warning("[%s] TCP stream closed by remote host - reconnecting", self._hostname)
                    await self._drop_connection("Connection closed by remote host")
                    continue

                self.last_message_received = datetime.now(timezone.utc)
                LOGGER.debug("[%s] TCP RX: %r", self._hostname, chunk)
                for line in self.framer.feed(chunk):
                    await self.async_response_handler(line)
        except asyncio.CancelledError:
            LOGGER.debug("[%s] Monitor loop cancelled", self._hostname)
        except Exception as exc:
            LOGGER.error("[%s] Monitor loop crashed: %r", self._hostname, exc)

    async def async_response_handler(self, line: bytes) -> None:
        """Apply one framed line and publish what it changed."""

        result = self.parser.parse(line)
        if not result.matched:
            LOGGER.debug("[%s] Unknown TCP response: %r", self._hostname, line)
            return

        if result.updates:
            self.set_variable_values(
                {variable_id(level, output): value for (level, output), value in result.updates.items()}
            )
        if result.feedbacks:
            self.check_feedbacks(*sorted(result.feedbacks))
        if result.query_requested:
            await self.query_routes()

    # ------------------------------------------------------------------
    # Requests from the presentation layer
    # ------------------------------------------------------------------

    async def _send_command(self, message: bytes) -> bool:
        if self.writer is None or not self.online:
            LOGGER.debug("[%s] Socket not connected, dropping %r", self._hostname, message)
            return False
        try:
            await tcp_send_message(self.writer, message)
        except (OSError, RuntimeError) as exc:
            LOGGER.error("[%s] Network error while sending: %s", self._hostname, exc)
            await self._drop_connection(f"Network error: {exc}")
            return False
        return True

    def _resolve_levels(self, levels: Optional[Iterable[str]]) -> List[str]:
        if levels is None:
            return self.device.level_ids
        resolved = list(levels)
        for level_id in resolved:
            self.state.validate_level(level_id)
        return resolved

    async def query_routes(self) -> bool:
        """Ask the matrix for the state of every crosspoint."""
        return await self._send_command(self.encoder.encode_query())

    async def switch(self, input_num: int, output: int, levels: Optional[Iterable[str]] = None) -> None:
        """Route ``input_num`` to ``output`` on the given levels (default: all).

        The mirror is only updated once the matrix reports the change.
        """

        level_ids = self._resolve_levels(levels)
        self.state.validate_input(input_num)
        self.state.validate_output(output)
        for level_id in level_ids:
            LOGGER.debug("[%s] Routing input %s to output %s on level %s", self._hostname, input_num, output, level_id)
            await self._send_command(self.encoder.encode_switch(level_id, output, input_num))

    def select_source(self, port: int, levels: Optional[Iterable[str]] = None) -> None:
        """Stage an input for the next take; selecting it again deselects it."""

        for level_id in self._resolve_levels(levels):
            self.state.select_source(level_id, port)
        self.check_feedbacks(FEEDBACK_SOURCE_SELECTED, FEEDBACK_ROUTE)

    def select_destination(self, port: int, levels: Optional[Iterable[str]] = None) -> None:
        """Stage an output for the next take; selecting it again deselects it."""

        for level_id in self._resolve_levels(levels):
            self.state.select_destination(level_id, port)
        self.check_feedbacks(FEEDBACK_DESTINATION_SELECTED, FEEDBACK_ROUTE)

    async def take_salvo(self, levels: Optional[Iterable[str]] = None) -> None:
        """Route the staged source to the staged destination on each level."""

        for level_id in self._resolve_levels(levels):
            candidate = self.state.take_candidate(level_id)
            if candidate is None:
                LOGGER.debug("[%s] Nothing staged for take on level %s", self._hostname, level_id)
                continue
            input_num, output = candidate
            await self.switch(input_num, output, [level_id])
