"""Per-kind wire knowledge for Snowmix objects.

Each kind of Snowmix object is described by a codec: its attribute record, the
commands that create, change and delete one object, and the parsers for the
listings Snowmix prints when asked what exists. Collections and items are generic
and only talk to the server through a codec.

Snowmix answers `audio mixer add` (with no arguments) with one line per mixer:
    audio mixer 1 <Main>
and `audio mixer info` with a dump like:
    audio mixer info
    audio mixers       : 1
    max audio mixers   : 8
    verbose level      : 0
    audio mixer id : state, rate, channels, bytespersample, signess, volume, mute, buffersize, delay, queues
    - audio mixer 1 : RUNNING, 48000, 2, 2, signed, 255,255, unmuted, 0, 0, 1
Audio feeds and sinks follow the same layout with their own tag and columns.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Optional


def _number(value) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _integer(value) -> int:
    return int(_number(value))


def _volume(value) -> tuple:
    """Volume is one value per channel: "255,255" or a sequence."""
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    elif isinstance(value, (int, float)):
        value = [value]
    return tuple(_number(part) for part in value)


def _muted(value) -> bool:
    # Anything but the literal "unmuted" token counts as muted, including
    # state tokens a newer server might introduce.
    if isinstance(value, str):
        return value.strip() != "unmuted"
    return bool(value)


def _id_list(value) -> tuple[int, ...]:
    if isinstance(value, (int, str)):
        value = [value]
    return tuple(int(item_id) for item_id in value)


@dataclass(frozen=True)
class AudioFeedAttributes:
    name: Optional[str] = None
    state: Optional[str] = None
    rate: Optional[int] = None
    channels: Optional[int] = None
    bytes_per_sample: Optional[int] = None
    signess: Optional[str] = None
    volume: Optional[tuple] = None
    muted: Optional[bool] = None
    buffer_size: Optional[int] = None
    delay: Optional[int] = None
    queues: Optional[int] = None


@dataclass(frozen=True)
class AudioMixerAttributes:
    name: Optional[str] = None
    state: Optional[str] = None
    rate: Optional[int] = None
    channels: Optional[int] = None
    bytes_per_sample: Optional[int] = None
    signess: Optional[str] = None
    volume: Optional[tuple] = None
    muted: Optional[bool] = None
    buffer_size: Optional[int] = None
    delay: Optional[int] = None
    queues: Optional[int] = None
    # Audio feed IDs mixed by this mixer. Weak references, resolved through
    # the audio feed collection.
    sources: tuple[int, ...] = ()


@dataclass(frozen=True)
class AudioSinkAttributes:
    name: Optional[str] = None
    state: Optional[str] = None
    rate: Optional[int] = None
    channels: Optional[int] = None
    bytes_per_sample: Optional[int] = None
    signess: Optional[str] = None
    volume: Optional[tuple] = None
    muted: Optional[bool] = None
    buffer_size: Optional[int] = None
    queues: Optional[int] = None


@dataclass(frozen=True)
class TextAttributes:
    text: Optional[str] = None


class ItemCodec(ABC):
    """Base class for the wire format of one kind of Snowmix object."""

    kind: str = ""
    attributes_class: type = object
    listing_command: str = ""
    info_command: Optional[str] = None
    read_only_fields: frozenset[str] = frozenset()
    converters: dict[str, Callable[[Any], Any]] = {}

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._field_names = frozenset(field.name for field in fields(self.attributes_class))

    @property
    def field_names(self) -> frozenset[str]:
        return self._field_names

    def new_attributes(self):
        """An empty attribute record."""
        return self.attributes_class()

    def defaults(self, item_id: int) -> dict[str, Any]:
        """Attributes a locally created item gets unless the caller provides them."""
        return {}

    def convert(self, field_name: str, value):
        if value is None:
            return None
        converter = self.converters.get(field_name)
        return converter(value) if converter else value

    def merge(self, current, updates: dict[str, Any]):
        """Merge `updates` into the record `current`.

        Returns the new record and the names of the fields whose value changed.
        Fields missing from `updates` keep their current value.
        """
        unknown = set(updates) - self._field_names
        if unknown:
            raise ValueError(f"Unknown {self.kind} attribute(s): {', '.join(sorted(unknown))}")
        values = {name: self.convert(name, value) for name, value in updates.items()}
        changed = [name for name, value in values.items() if getattr(current, name) != value]
        if not changed:
            return current, []
        return replace(current, **values), changed

    def listing_record(self, value: str) -> dict[str, Any]:
        """Attributes carried by one entry of the listing command."""
        return {"name": value}

    def check_change(self, item_id: int, synced, updated):
        """Raise ValueError for a local change the server cannot carry out.

        `synced` is the record last known to match the server.
        """

    @abstractmethod
    def render(self, item_id: int, attributes, changed: frozenset[str], on_server: bool, synced=None) -> list[str]:
        """Commands that bring the server in line with `attributes`.

        `changed` holds the names of the pending fields; `on_server` is False when the
        object has to be created first. `synced` is the record last known to match
        the server, if any.
        """

    @abstractmethod
    def render_delete(self, item_id: int) -> list[str]:
        """Commands that delete the object from the server."""

    @abstractmethod
    def parse_listing(self, lines: list[str]) -> dict[int, str]:
        """Parse the listing command's response into {id: value}."""

    def parse_info(self, lines: list[str]) -> tuple[dict[int, dict[str, Any]], dict[str, int]]:
        """Parse the info command's response into ({id: attributes}, metadata)."""
        return {}, {}


class AudioCodec(ItemCodec):
    """Shared wire format of audio feeds, audio mixers and audio sinks."""

    plural: str = ""
    # (wire column name, attribute field) in the order Snowmix prints them
    columns: tuple[tuple[str, str], ...] = ()
    read_only_fields = frozenset(["state", "bytes_per_sample", "signess", "buffer_size", "queues"])
    converters = {
        "rate": _integer,
        "channels": _integer,
        "bytes_per_sample": _integer,
        "volume": _volume,
        "muted": _muted,
        "buffer_size": _integer,
        "delay": _integer,
        "queues": _integer,
        "sources": _id_list,
    }

    def __init__(self):
        super().__init__()
        kind = re.escape(self.kind)
        plural = re.escape(self.plural)
        header = re.escape(", ".join(column for column, _ in self.columns))
        self._listing_line = re.compile(rf"^\s*{kind}\s*(\d+)\s*<(.+)>\s*$")
        self._info_title_line = re.compile(rf"^\s*{kind} info\s*$")
        self._count_line = re.compile(rf"^\s*{plural}\s*:\s*(\d+)\s*$")
        self._max_count_line = re.compile(rf"^\s*max {plural}\s*:\s*(\d+)\s*$")
        self._verbose_level_line = re.compile(r"^\s*verbose level\s*:\s*(\d+)\s*$")
        self._header_line = re.compile(rf"^\s*{kind} id\s*:\s*{header}\s*$")
        self._detail_line = re.compile(rf"^[-\s]*{kind}\s*(\d+)\s*:\s*(.+)$")

    @property
    def listing_command(self) -> str:
        return f"{self.kind} add"

    @property
    def info_command(self) -> str:
        return f"{self.kind} info"

    def defaults(self, item_id: int) -> dict[str, Any]:
        return {"name": f"{self.kind.title().replace(' ', '')}{item_id}"}

    def _setter_commands(self, item_id: int, attributes, changed: frozenset[str]) -> list[str]:
        commands = []
        if "rate" in changed and attributes.rate is not None:
            commands.append(f"{self.kind} rate {item_id} {attributes.rate}")
        if "channels" in changed and attributes.channels is not None:
            commands.append(f"{self.kind} channels {item_id} {attributes.channels}")
        if "volume" in changed and attributes.volume is not None:
            volume = ",".join(str(level) for level in attributes.volume)
            commands.append(f"{self.kind} volume {item_id} {volume}")
        if "muted" in changed and attributes.muted is not None:
            commands.append(f"{self.kind} mute {'on' if attributes.muted else 'off'} {item_id}")
        if "delay" in changed and getattr(attributes, "delay", None) is not None:
            commands.append(f"{self.kind} delay {item_id} {attributes.delay}")
        return commands

    def render(self, item_id: int, attributes, changed: frozenset[str], on_server: bool, synced=None) -> list[str]:
        commands = []
        if not on_server:
            commands.append(f"{self.kind} add {item_id} {attributes.name}")
        elif "name" in changed:
            self._logger.warning(
                f"{self.kind} {item_id}: Snowmix cannot rename an existing object, "
                f"name {attributes.name!r} is kept locally only"
            )
        commands.extend(self._setter_commands(item_id, attributes, changed))
        return commands

    def render_delete(self, item_id: int) -> list[str]:
        # "add" with an ID and no name removes the object
        return [f"{self.kind} add {item_id}"]

    def parse_listing(self, lines: list[str]) -> dict[int, str]:
        ids_and_names = {}
        for line in lines:
            match = self._listing_line.match(line)
            if match:
                ids_and_names[int(match.group(1))] = match.group(2)
        return ids_and_names

    def parse_info(self, lines: list[str]) -> tuple[dict[int, dict[str, Any]], dict[str, int]]:
        details: dict[int, dict[str, Any]] = {}
        metadata: dict[str, int] = {}
        for line in lines:
            if self._info_title_line.match(line) or self._header_line.match(line):
                continue

            match = self._count_line.match(line)
            if match:
                metadata["count"] = int(match.group(1))
                continue

            match = self._max_count_line.match(line)
            if match:
                metadata["max_items"] = int(match.group(1))
                continue

            match = self._verbose_level_line.match(line)
            if match:
                metadata["verbose_level"] = int(match.group(1))
                continue

            match = self._detail_line.match(line)
            if match:
                item_id = int(match.group(1))
                record = self._parse_detail(item_id, match.group(2))
                if record is not None:
                    details[item_id] = record
                continue

            self._logger.warning(f"Misunderstood line in {self.info_command}: {line}")
        return details, metadata

    def _parse_detail(self, item_id: int, text: str) -> Optional[dict[str, Any]]:
        # The volume column is itself comma separated, but without the space
        values = text.split(", ")
        if len(values) != len(self.columns):
            self._logger.warning(
                f"{self.kind} {item_id}: expected {len(self.columns)} fields in "
                f"{self.info_command}, got {len(values)}: {text}"
            )
            return None
        try:
            return {
                field_name: self.convert(field_name, value.strip())
                for (_, field_name), value in zip(self.columns, values)
            }
        except ValueError as e:
            self._logger.warning(f"{self.kind} {item_id}: unparsable {self.info_command} fields ({e}): {text}")
            return None


class AudioFeedCodec(AudioCodec):
    kind = "audio feed"
    plural = "audio feeds"
    attributes_class = AudioFeedAttributes
    columns = (
        ("state", "state"),
        ("rate", "rate"),
        ("channels", "channels"),
        ("bytespersample", "bytes_per_sample"),
        ("signess", "signess"),
        ("volume", "volume"),
        ("mute", "muted"),
        ("buffersize", "buffer_size"),
        ("delay", "delay"),
        ("queues", "queues"),
    )


class AudioMixerCodec(AudioCodec):
    kind = "audio mixer"
    plural = "audio mixers"
    attributes_class = AudioMixerAttributes
    columns = AudioFeedCodec.columns

    def check_change(self, item_id: int, synced, updated):
        # Snowmix can attach a source feed to a mixer but not detach it
        detached = set(synced.sources) - set(updated.sources)
        if detached:
            raise ValueError(
                f"{self.kind} {item_id}: source feed(s) {', '.join(str(feed_id) for feed_id in sorted(detached))} "
                f"cannot be detached"
            )

    def render(self, item_id: int, attributes, changed: frozenset[str], on_server: bool, synced=None) -> list[str]:
        commands = super().render(item_id, attributes, changed, on_server, synced)
        if "sources" in changed:
            attached = set(synced.sources) if synced is not None else set()
            for feed_id in attributes.sources:
                if feed_id not in attached:
                    commands.append(f"{self.kind} source feed {item_id} {feed_id}")
        return commands


class AudioSinkCodec(AudioCodec):
    kind = "audio sink"
    plural = "audio sinks"
    attributes_class = AudioSinkAttributes
    columns = (
        ("state", "state"),
        ("rate", "rate"),
        ("channels", "channels"),
        ("bytespersample", "bytes_per_sample"),
        ("signess", "signess"),
        ("volume", "volume"),
        ("mute", "muted"),
        ("buffersize", "buffer_size"),
        ("queues", "queues"),
    )


class TextCodec(ItemCodec):
    """Text strings: `text string <id> <text>`, listed by `text string`."""

    kind = "text string"
    attributes_class = TextAttributes
    listing_command = "text string"
    converters = {"text": str}

    LISTING_LINE = re.compile(r"^\s*text string\s+(\d+)\s+<(.*)>\s*$")

    def defaults(self, item_id: int) -> dict[str, Any]:
        return {"text": f"Text {item_id}"}

    def listing_record(self, value: str) -> dict[str, Any]:
        return {"text": value}

    def render(self, item_id: int, attributes, changed: frozenset[str], on_server: bool, synced=None) -> list[str]:
        if on_server and "text" not in changed:
            return []
        return [f"{self.kind} {item_id} {attributes.text}"]

    def render_delete(self, item_id: int) -> list[str]:
        return [f"{self.kind} {item_id}"]

    def parse_listing(self, lines: list[str]) -> dict[int, str]:
        texts = {}
        for line in lines:
            match = self.LISTING_LINE.match(line)
            if match:
                texts[int(match.group(1))] = match.group(2)
        return texts
