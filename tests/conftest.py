"""Shared fixtures: small profiles and a fake matrix speaking TCP on localhost."""

import asyncio

import pytest

from custom_components.usbmatrix.profiles import CommandType, DeviceProfile, Level
from custom_components.usbmatrix.state import RoutingState
from custom_components.usbmatrix.usbmatrix import UsbMatrixConfig


def status_byte(input_num):
    """Encode an input number the way the matrix reports it in a Q response."""
    return 0x80 | (input_num - 1)


class FakeMatrix:
    """Accepts connections, records CR terminated commands and sends lines back."""

    def __init__(self):
        self.commands = asyncio.Queue()
        self.writers = []
        self.connections = 0
        self.server = None
        self.port = None

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _handle(self, reader, writer):
        self.connections += 1
        self.writers.append(writer)
        buffer = b""
        while True:
            try:
                data = await reader.read(1024)
            except (ConnectionError, OSError):
                break
            if not data:
                break
            buffer += data
            while b"\r" in buffer:
                command, buffer = buffer.split(b"\r", 1)
                await self.commands.put(command + b"\r")

    async def next_command(self, timeout=2.0):
        return await asyncio.wait_for(self.commands.get(), timeout)

    async def send(self, data):
        for writer in list(self.writers):
            if writer.is_closing():
                continue
            writer.write(data)
            await writer.drain()

    async def drop_clients(self):
        writers, self.writers = self.writers, []
        for writer in writers:
            writer.close()

    async def close(self):
        await self.drop_clients()
        self.server.close()
        await self.server.wait_closed()


async def wait_until(predicate, timeout=2.0):
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def usb_profile():
    """8x8 matrix with a single USB level at the start of the status payload."""
    return DeviceProfile(
        name="Test 8x8",
        command_type=CommandType.CHECKSUM,
        inputs=8,
        outputs=8,
        levels=(Level("U", "USB", 0),),
    )


@pytest.fixture
def dual_profile():
    """8x8 matrix with an HDMI and a USB level."""
    return DeviceProfile(
        name="Test dual",
        command_type=CommandType.CHECKSUM,
        inputs=8,
        outputs=8,
        levels=(Level("V", "HDMI", 0), Level("U", "USB", 8)),
    )


@pytest.fixture
def usb_state(usb_profile):
    return RoutingState(usb_profile)


@pytest.fixture
async def fake_matrix():
    matrix = FakeMatrix()
    await matrix.start()
    yield matrix
    await matrix.close()


@pytest.fixture
def make_config():
    def _make_config(port, **kwargs):
        kwargs.setdefault("reconnect_delay", 0.05)
        kwargs.setdefault("max_reconnect_delay", 0.1)
        return UsbMatrixConfig(host="127.0.0.1", tcp_port=port, **kwargs)

    return _make_config
