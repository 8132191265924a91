"""Loading/Ready/Error state machine a presentation component wraps around a
collection service.

The binding owns the list a view renders. ``fetch()`` switches to
``Loading`` before returning and schedules the request; only the most recent
request may commit its result. Writes either splice the local items
(optimistic) or go back through ``Loading`` and refetch.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from ..core.errors import user_safe_message
from ..core.filters import Comparison, parse_filter
from ..services.collection_service import CollectionService
from ..services.paging import Page
from ..services.schema import Item, ItemId, Projection


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Ready:
    items: Tuple[Item, ...]
    has_more: bool = False


@dataclass(frozen=True)
class Error:
    message: str


ViewState = Union[Loading, Ready, Error]
Listener = Callable[[ViewState], None]


class WriteStrategy(enum.Enum):
    OPTIMISTIC = "optimistic"
    REFETCH = "refetch"


class CollectionBinding:
    def __init__(
        self,
        service: CollectionService,
        projection: Union[Projection, Sequence[str]],
        *,
        filter: Optional[str] = None,
        page_size: Optional[int] = None,
        strategy: WriteStrategy = WriteStrategy.OPTIMISTIC,
    ) -> None:
        self.service = service
        self.projection = projection if isinstance(projection, Projection) else service.projection(*projection)
        self.filter = filter
        self._comparisons: List[Comparison] = parse_filter(
            filter, (service.schema.id_field,) + service.schema.field_names
        )
        self.page_size = page_size
        self.strategy = strategy
        self.state: ViewState = Loading()
        self.generation = 0
        self._page: Optional[Page] = None
        self._listeners: List[Listener] = []
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def items(self) -> Tuple[Item, ...]:
        return self.state.items if isinstance(self.state, Ready) else ()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: ViewState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def _fail(self, exc: BaseException, action: str) -> None:
        logger.error(f"{action} on {self.service.name!r} failed: {exc!r}")
        self._transition(Error(user_safe_message(exc)))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def fetch(self) -> "asyncio.Task[None]":
        """Enter ``Loading`` now and fetch the first page in the background.

        Must be called from a running event loop.
        """
        self.generation += 1
        generation = self.generation
        self._transition(Loading())
        # The event loop only keeps weak references to tasks
        self._task = asyncio.ensure_future(self._run_fetch(generation))
        return self._task

    async def load(self) -> ViewState:
        await self.fetch()
        return self.state

    async def _run_fetch(self, generation: int) -> None:
        try:
            page = await self.service.list(self.projection, self.filter, self.page_size)
        except Exception as e:
            if generation == self.generation:
                self._fail(e, "Fetch")
            return
        if generation != self.generation:
            logger.debug(f"Discarding stale result for {self.service.name!r} (generation {generation})")
            return
        self._page = page
        self._transition(Ready(page.items, page.has_next()))

    async def load_more(self) -> ViewState:
        """Append the next page to the ready list, if there is one."""
        if not isinstance(self.state, Ready) or self._page is None or not self._page.has_next():
            return self.state
        generation = self.generation
        current = self.state
        try:
            page = await self._page.next()
        except Exception as e:
            if generation == self.generation:
                self._fail(e, "Load more")
            return self.state
        if generation == self.generation:
            self._page = page
            # Items spliced in locally may come back with a later page
            known = {item.id for item in current.items}
            fresh = tuple(item for item in page.items if item.id not in known)
            self._transition(Ready(current.items + fresh, page.has_next()))
        return self.state

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _optimistic(self) -> bool:
        return self.strategy is WriteStrategy.OPTIMISTIC and isinstance(self.state, Ready)

    async def _write_and_refetch(self, write, action: str) -> Any:
        self.generation += 1
        self._transition(Loading())
        try:
            result = await write()
        except Exception as e:
            self._fail(e, action)
            return None
        await self.fetch()
        return result

    async def create(self, values: Mapping[str, Any]) -> Optional[Item]:
        if not self._optimistic():
            return await self._write_and_refetch(lambda: self.service.create(values), "Create")

        generation = self.generation
        try:
            created = await self.service.create(values)
        except Exception as e:
            self._fail(e, "Create")
            return None
        # Unloaded pages are ordered after the loaded ones, so a new id lands
        # there and arrives with load_more()
        if (
            generation == self.generation
            and isinstance(self.state, Ready)
            and not self.state.has_more
            and self._matches_created(created)
        ):
            local = Item(created.id, {name: created.get(name) for name in self.projection.fields})
            self._transition(Ready(self.state.items + (local,), self.state.has_more))
        return created

    def _matches_created(self, created: Item) -> bool:
        id_field = self.service.schema.id_field
        return all(
            c.matches(created.id if c.field == id_field else created.get(c.field))
            for c in self._comparisons
        )

    def _still_matches(self, values: Mapping[str, Any]) -> bool:
        """Whether an item that matched the filter still does after ``values``."""
        return all(c.matches(values[c.field]) for c in self._comparisons if c.field in values)

    async def update(self, item_id: ItemId, values: Mapping[str, Any]) -> bool:
        if not self._optimistic():
            done = await self._write_and_refetch(lambda: self._update(item_id, values), "Update")
            return bool(done)

        current = self.state
        if self._still_matches(values):
            items = tuple(item.merged(values) if item.id == item_id else item for item in current.items)
        else:
            items = tuple(item for item in current.items if item.id != item_id)
        self._transition(Ready(items, current.has_more))
        try:
            await self.service.update(item_id, values)
        except Exception as e:
            self._fail(e, "Update")
            return False
        return True

    async def _update(self, item_id: ItemId, values: Mapping[str, Any]) -> bool:
        await self.service.update(item_id, values)
        return True

    async def delete(self, item_id: ItemId) -> bool:
        if not self._optimistic():
            done = await self._write_and_refetch(lambda: self._delete(item_id), "Delete")
            return bool(done)

        current = self.state
        self._transition(Ready(tuple(item for item in current.items if item.id != item_id), current.has_more))
        try:
            await self.service.delete(item_id)
        except Exception as e:
            self._fail(e, "Delete")
            return False
        return True

    async def _delete(self, item_id: ItemId) -> bool:
        await self.service.delete(item_id)
        return True
