import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pysnowmix.collection import SnowmixItemCollection

# Pending marker for an item that has not been created on the server yet
PENDING_CREATE = "id"


class SnowmixItem:
    """Local mirror of one Snowmix object (an audio mixer, a text string, ...).

    Attribute values live in an immutable per-kind record and can be read directly
    on the item, e.g. `mixer.name` or `mixer.muted`. Local changes are recorded as
    pending until `apply()` has sent them to the server.
    """

    def __init__(self, collection: 'SnowmixItemCollection', item_id: int, attributes, on_server: bool = False):
        self._logger = logging.getLogger(__name__)
        self._collection = collection
        self._id = item_id
        self._attributes = attributes
        # Record last known to match the server
        self._synced = attributes
        self._on_server = on_server
        self._deleted = False

        # Maps field name -> change version at which it was last assigned locally
        self._pending: dict[str, int] = {}
        self._change_version: int = 0
        # Serializes apply() and delete() of this item
        self._lock = asyncio.Lock()

    def __getattr__(self, name: str):
        # Only reached when normal lookup fails: expose the attribute record's fields
        attributes = self.__dict__.get("_attributes")
        if attributes is not None and name in attributes.__dataclass_fields__:
            return getattr(attributes, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __repr__(self):
        return f"<{self.kind} {self._id} {self._attributes!r}>"

    @property
    def id(self) -> int:
        return self._id

    @property
    def kind(self) -> str:
        return self._collection.codec.kind

    @property
    def attributes(self):
        """The current attribute record."""
        return self._attributes

    @property
    def dirty(self) -> bool:
        """Whether local changes are waiting to be applied."""
        return bool(self._pending)

    @property
    def pending_fields(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def on_server(self) -> bool:
        """Whether the object exists on the server."""
        return self._on_server

    @property
    def deleted(self) -> bool:
        return self._deleted

    def assign(self, new_attributes: dict[str, Any], track_change: bool = False) -> bool:
        """Merge `new_attributes` into the current attributes.

        With `track_change` every field that actually changes becomes pending and the
        item is dirty until applied. Without it the values are taken as the server's
        own account, so nothing is marked pending.

        Returns whether any field changed.
        """
        codec = self._collection.codec
        attributes, changed = codec.merge(self._attributes, new_attributes)
        if track_change:
            read_only = codec.read_only_fields.intersection(changed)
            if read_only:
                raise ValueError(
                    f"{self.kind} {self._id}: {', '.join(sorted(read_only))} can only be set by the server"
                )
            codec.check_change(self._id, self._synced, attributes)
        else:
            self._synced, _ = codec.merge(self._synced, new_attributes)
        self._attributes = attributes
        if track_change and changed:
            self._mark_pending(changed)
        return bool(changed)

    def _mark_pending(self, field_names):
        self._change_version += 1
        for field_name in field_names:
            self._pending[field_name] = self._change_version

    def _mark_on_server(self):
        self._on_server = True
        self._pending.pop(PENDING_CREATE, None)

    async def apply(self):
        """Send pending changes to the server.

        Exactly the attributes present when the call starts are sent. Anything
        assigned while the commands are in flight stays pending.
        """
        async with self._lock:
            if not self._pending:
                return
            if self._deleted:
                self._logger.debug(f"{self.kind} {self._id} was deleted, not applying")
                return

            version = self._change_version
            attributes = self._attributes
            changed = frozenset(self._pending)
            commands = self._collection.codec.render(self._id, attributes, changed, self._on_server, self._synced)

            session = self._collection.session
            for command in commands:
                await session.send_command(command)

            self._on_server = True
            self._synced = attributes
            self._pending = {
                field_name: field_version
                for field_name, field_version in self._pending.items()
                if field_version > version
            }
            self._logger.debug(f"Applied {len(commands)} command(s) for {self.kind} {self._id}")

    async def delete(self):
        """Delete from the server, then from the owning collection.

        Calling it again once deleted does nothing.
        """
        async with self._lock:
            if self._deleted:
                return
            if self._on_server:
                session = self._collection.session
                for command in self._collection.codec.render_delete(self._id):
                    await session.send_command(command)
            self._deleted = True
            self._collection._remove_from_internal_list(self)
            self._logger.info(f"Deleted {self.kind} {self._id}")

    remove = delete

    def resolve(self, field_name: str, collection: 'SnowmixItemCollection') -> list['SnowmixItem']:
        """Resolve a field holding IDs of another kind, skipping IDs that no longer exist."""
        return collection.resolve(getattr(self._attributes, field_name) or ())
