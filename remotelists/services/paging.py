"""Pages and cursors over paginated ``list`` results.

Continuation is a plain offset: no server-side resource is held between
calls. If the collection changes between two fetches, items may be repeated
or skipped at page boundaries.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from ..core.errors import NoMorePages
from .schema import Item


PageFetcher = Callable[[int], Awaitable["Page"]]


@dataclass(frozen=True)
class Page:
    items: Tuple[Item, ...]
    has_more: bool
    continuation: Optional[int] = None
    offset: int = 0
    _fetch_next: Optional[PageFetcher] = field(default=None, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def has_next(self) -> bool:
        return self.has_more and self.continuation is not None and self._fetch_next is not None

    async def next(self) -> "Page":
        if not self.has_next():
            raise NoMorePages()
        return await self._fetch_next(self.continuation)


class PageCursor:
    """Restartable handle over the successive pages of one ``list`` call.

    Built either around an already fetched page or around a fetcher that
    loads the first page on the first :meth:`next`.
    """

    def __init__(self, fetch: PageFetcher, page: Optional[Page] = None, start: int = 0) -> None:
        self._fetch = fetch
        self._start = start
        self.current: Optional[Page] = page

    def has_next(self) -> bool:
        if self.current is None:
            return True
        return self.current.has_next()

    async def next(self) -> Page:
        if self.current is None:
            self.current = await self._fetch(self._start)
            return self.current
        if not self.current.has_next():
            raise NoMorePages()
        self.current = await self.current.next()
        return self.current

    def restart(self) -> None:
        self.current = None

    async def __aiter__(self) -> AsyncIterator[Item]:
        if self.current is not None:
            for item in self.current.items:
                yield item
        while self.has_next():
            page = await self.next()
            for item in page.items:
                yield item

    async def collect(self) -> List[Item]:
        return [item async for item in self]
