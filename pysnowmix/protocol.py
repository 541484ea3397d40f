import asyncio
import logging
import re
from typing import Optional

from pysnowmix.exceptions import SnowmixConnectionError
from pysnowmix.listener import SnowmixListener

# Command priority levels (lower number = higher priority)
# Changes requested by the caller go ahead of discovery queries.
PRIORITY_WRITE = 10   # Commands that change server state (add, volume, mute, delete)
PRIORITY_READ = 20    # Commands that query server state (listings, info dumps)

# Snowmix prefixes the output of query commands with "STAT: " and ends a
# multi-line answer with an empty "STAT: " line:
#   STAT: audio mixer 1 <Main>
#   STAT:
STATUS_LINE = re.compile(r"^STAT:\s?(.*)$")

# Messages, mostly errors, come prefixed with "MSG: ":
#   MSG: Invalid command or parameters for audio mixer volume
MESSAGE_LINE = re.compile(r"^MSG:\s?(.*)$")

# Sent once after connecting: "Snowmix version 0.5.1."
GREETING_LINE = re.compile(r"^Snowmix version\s+(\S+?)\.?\s*$", re.IGNORECASE)


def is_end_of_response(line: str) -> bool:
    """Whether a status line ends a multi-line response."""
    match = STATUS_LINE.match(line)
    return bool(match) and not match.group(1).strip()


def tidy_line(line: str) -> str:
    """Strip the STAT: prefix and normalize whitespace."""
    match = STATUS_LINE.match(line)
    if match:
        line = match.group(1)
    return " ".join(line.split())


class SnowmixProtocol(asyncio.Protocol):
    """Line framing for a Snowmix control connection.

    Splits the byte stream into lines, classifies them and hands them to the
    callback. Command sequencing is left to the session on top.
    """

    _transport: Optional[asyncio.Transport]
    _callback: SnowmixListener

    def __init__(self, callback: SnowmixListener, encoding: str = "utf-8"):
        self._logger = logging.getLogger(__name__)
        self._callback = callback
        self._encoding = encoding
        self._transport = None
        self._received_buffer = b""
        self.peer_name = None

    @property
    def transport(self) -> Optional[asyncio.Transport]:
        return self._transport

    def connection_made(self, transport):
        """Method from asyncio.Protocol"""
        self._transport = transport
        self._received_buffer = b""
        self.peer_name = transport.get_extra_info("peername")
        self._logger.info(f"Connection Made: {self.peer_name}")
        self._callback.connected()

    def connection_lost(self, exc):
        """Method from asyncio.Protocol"""
        if exc is not None:
            self._logger.warning(f"Connection lost: {exc}")
        self._transport = None
        self._callback.disconnected()

    def data_received(self, data):
        """Method from asyncio.Protocol"""
        self._logger.debug(f"data_received client: {data}")
        self._callback.data_received(data)

        # Decode whole lines only, a multi-byte character may span two packets
        self._received_buffer += data
        *lines, self._received_buffer = self._received_buffer.split(b"\n")
        for line in lines:
            self._process_received_line(line.decode(self._encoding, errors="replace").rstrip("\r"))

    def _process_received_line(self, line: str):
        if STATUS_LINE.match(line):
            self._callback.status_line_received(line)
            return

        message_match = MESSAGE_LINE.match(line)
        if message_match:
            self._logger.debug(f"Message received: {line}")
            self._callback.message_received(message_match.group(1).strip())
            return

        greeting_match = GREETING_LINE.match(line)
        if greeting_match:
            self._logger.debug(f"Greeting received: {line}")
            self._callback.greeting_received(greeting_match.group(1))
            return

        if line.strip():
            self._logger.debug(f"Ignoring unclassified line: {line}")

    def write(self, message: str):
        """Write one command, adding the line terminator."""
        if self._transport is None or self._transport.is_closing():
            raise SnowmixConnectionError("Not connected to Snowmix")
        if not message.endswith("\n"):
            message += "\n"
        self._transport.write(message.encode(self._encoding))

    def close(self):
        if self._transport:
            self._transport.close()
