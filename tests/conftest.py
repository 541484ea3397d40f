import asyncio

import pytest

from pysnowmix.collection import SnowmixItemCollection
from pysnowmix.kinds import AudioFeedCodec, AudioMixerCodec, TextCodec
from pysnowmix.protocol import PRIORITY_WRITE


class FakeSession:
    """Records commands and answers multi-line ones from canned responses."""

    def __init__(self):
        self.sent: list[str] = []
        self.requests: list[dict] = []
        self.responses: dict[str, list[str]] = {}
        self.failures: dict[str, Exception] = {}
        # When set, every command waits for it before completing
        self.gate: asyncio.Event | None = None

    async def send_command(self, command, tidy=False, expect_multiline=False,
                           log_at_silly_level=False, priority=PRIORITY_WRITE):
        self.sent.append(command)
        self.requests.append({
            "command": command,
            "tidy": tidy,
            "expect_multiline": expect_multiline,
            "log_at_silly_level": log_at_silly_level,
            "priority": priority,
        })
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if command in self.failures:
            raise self.failures[command]
        if expect_multiline:
            return list(self.responses.get(command, []))
        return None


MIXER_INFO_HEADER = [
    "audio mixer info",
    "audio mixers : 2",
    "max audio mixers : 8",
    "verbose level : 0",
    "audio mixer id : state, rate, channels, bytespersample, signess, volume, mute, buffersize, delay, queues",
]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def mixers(session):
    return SnowmixItemCollection(session, AudioMixerCodec())


@pytest.fixture
def feeds(session):
    return SnowmixItemCollection(session, AudioFeedCodec())


@pytest.fixture
def texts(session):
    return SnowmixItemCollection(session, TextCodec())
