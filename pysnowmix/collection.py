import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional

from pysnowmix.item import PENDING_CREATE, SnowmixItem
from pysnowmix.kinds import ItemCodec
from pysnowmix.protocol import PRIORITY_READ
from pysnowmix.utils import find_first_hole_in_sequence

if TYPE_CHECKING:
    from pysnowmix.snowmix import Snowmix


class SnowmixItemCollection:
    """All Snowmix objects of one kind (audio feeds, audio mixers, texts, ...).

    The collection is generic: everything kind specific, from the attribute record
    to the command syntax, comes from the codec it is given.
    """

    def __init__(self, session: 'Snowmix', codec: ItemCodec):
        self._logger = logging.getLogger(__name__)
        self._session = session
        self._codec = codec
        self._items: list[SnowmixItem] = []
        # Collection level values reported by the info command (count, max_items, verbose_level)
        self.metadata: dict[str, int] = {}

    def __iter__(self) -> Iterator[SnowmixItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self):
        return f"<SnowmixItemCollection {self._codec.kind}: {self.all_ids()}>"

    @property
    def session(self) -> 'Snowmix':
        return self._session

    @property
    def codec(self) -> ItemCodec:
        return self._codec

    @property
    def kind(self) -> str:
        return self._codec.kind

    @property
    def max_items(self) -> Optional[int]:
        """Maximum number of objects of this kind, as reported by the server."""
        return self.metadata.get("max_items")

    def all(self) -> list[SnowmixItem]:
        """All items, in the order they were added."""
        return list(self._items)

    def all_ids(self) -> list[int]:
        return [item.id for item in self._items]

    def by_id(self, item_id) -> Optional[SnowmixItem]:
        """Get an item by ID, or None if there is no such item."""
        try:
            item_id = int(item_id)
        except (TypeError, ValueError):
            return None
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def resolve(self, item_ids: Iterable[int]) -> list[SnowmixItem]:
        """Look up several IDs, skipping the ones that no longer exist."""
        items = []
        for item_id in item_ids:
            item = self.by_id(item_id)
            if item is None:
                self._logger.debug(f"{self.kind} {item_id} is referenced but no longer exists")
                continue
            items.append(item)
        return items

    def get_next_available_id(self) -> int:
        """Returns next available ID.

        e.g. if existing IDs used are [1, 2, 3, 5] return 4, then 6.
        """
        return find_first_hole_in_sequence(self.all_ids())

    async def create(self, **args) -> SnowmixItem:
        """Create an item and apply it to the server.

        If `id` names an existing item, that item is updated instead. If `id` is
        omitted, the next available ID is used.
        """
        item = self._create_or_update(args, track_change=True)
        await item.apply()
        return item

    add = create

    def _create_or_update(self, args: dict[str, Any], track_change: bool = False) -> SnowmixItem:
        args = dict(args)
        item_id = args.pop("id", None)
        item = None
        if item_id is not None:
            item_id = self._validate_id(item_id)
            item = self.by_id(item_id)

        if item:  # update
            item.assign(args, track_change)
            if not track_change:
                item._mark_on_server()
            return item

        # create
        if item_id is None:
            item_id = self.get_next_available_id()
        values = self._codec.defaults(item_id) if track_change else {}
        values.update(args)
        item = SnowmixItem(self, item_id, self._codec.new_attributes(), on_server=not track_change)
        item.assign(values, track_change)
        if track_change:
            item._mark_pending([PENDING_CREATE])
        self._items.append(item)
        self._logger.debug(f"Added {self.kind} {item_id} to collection")
        return item

    def _validate_id(self, item_id) -> int:
        try:
            value = int(item_id)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid {self.kind} id {item_id!r}") from None
        if value < 1:
            raise ValueError(f"Invalid {self.kind} id {item_id!r}, must be a positive integer")
        return value

    def _remove_from_internal_list(self, item: SnowmixItem):
        self._items = [existing for existing in self._items if existing is not item]

    async def delete_all(self):
        """Delete every item.

        The IDs are captured before any deletion starts and all deletions run
        concurrently. Every deletion is attempted; if any failed, the first failure
        is raised and the items that were deleted stay deleted.
        """
        ids = self.all_ids()
        results = await asyncio.gather(
            *(self._delete_by_id(item_id) for item_id in ids), return_exceptions=True
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            self._logger.error(f"Failed to delete {len(failures)} of {len(ids)} {self._codec.kind} objects")
            raise failures[0]

    remove_all = delete_all

    async def _delete_by_id(self, item_id: int):
        item = self.by_id(item_id)
        if item is not None:
            await item.delete()

    async def populate(self):
        """Rebuild the collection from the server's own account.

        The listing command gives IDs and names, the info command the remaining
        attributes. Only objects present in both are materialized.
        """
        ids_and_values = await self._parse_listing_command()
        self._log_unlisted_items(ids_and_values)
        if self._codec.info_command is None:
            for item_id, value in ids_and_values.items():
                self._create_or_update({"id": item_id, **self._codec.listing_record(value)})
            return
        await self._parse_info_command(ids_and_values)

    def _log_unlisted_items(self, ids_and_values: dict[int, str]):
        # Discovery never deletes local items
        for item in self._items:
            if item.on_server and item.id not in ids_and_values:
                self._logger.debug(
                    f"{self.kind} {item.id} is no longer listed by [{self._codec.listing_command}], keeping it locally"
                )

    async def _parse_listing_command(self) -> dict[int, str]:
        lines = await self._session.send_command(
            self._codec.listing_command,
            tidy=True,
            expect_multiline=True,
            log_at_silly_level=True,
            priority=PRIORITY_READ,
        )
        return self._codec.parse_listing(lines or [])

    async def _parse_info_command(self, ids_and_values: dict[int, str]):
        lines = await self._session.send_command(
            self._codec.info_command,
            tidy=True,
            expect_multiline=True,
            log_at_silly_level=True,
            priority=PRIORITY_READ,
        )
        details, metadata = self._codec.parse_info(lines or [])
        self.metadata.update(metadata)

        for item_id, record in details.items():
            if item_id not in ids_and_values:
                self._logger.debug(
                    f"{self.kind} {item_id} is known by [{self._codec.info_command}] "
                    f"but not [{self._codec.listing_command}], omitting"
                )
                continue
            self._create_or_update({"id": item_id, **self._codec.listing_record(ids_and_values[item_id]), **record})

        for item_id in ids_and_values.keys() - details.keys():
            self._logger.debug(
                f"{self.kind} {item_id} is known by [{self._codec.listing_command}] "
                f"but not [{self._codec.info_command}], omitting"
            )
