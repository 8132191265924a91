import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import httpx
from postgrest.exceptions import APIError

from ..core.client import ClientProvider
from ..core.config import Config
from ..core.errors import InvalidProjection, NotFound, RemoteFault, ValidationFault
from ..core.filters import Comparison, apply_filters, parse_filter
from .batch import Batch, BatchOperation, BatchResult
from .paging import Page, PageCursor
from .schema import CollectionSchema, Item, ItemId, Projection


logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes the store reports for caller mistakes
NOT_FOUND_CODES = {"PGRST116"}
VALIDATION_CODES = {"23502", "23505", "23514", "22P02", "PGRST204"}
PROJECTION_CODES = {"42703"}


class CollectionService:
    """Typed read/write access to one named remote collection.

    All I/O goes through the handle held by ``provider``; the service itself
    keeps no mutable state.
    """

    def __init__(
        self,
        provider: ClientProvider,
        schema: CollectionSchema,
        *,
        default_page_size: Optional[int] = None,
        max_page_size: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self.schema = schema
        self.max_page_size = max_page_size or Config.MAX_PAGE_SIZE
        self.default_page_size = min(default_page_size or Config.DEFAULT_PAGE_SIZE, self.max_page_size)

    @property
    def name(self) -> str:
        return self.schema.name

    def __repr__(self) -> str:
        return f"CollectionService({self.name!r})"

    def projection(self, *fields: str) -> Projection:
        return Projection(self.schema, fields)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list(
        self,
        projection: Union[Projection, Sequence[str]],
        filter: Optional[str] = None,
        page_size: Optional[int] = None,
        *,
        offset: int = 0,
    ) -> Page:
        projection = self._coerce_projection(projection)
        comparisons = parse_filter(filter, (self.schema.id_field,) + self.schema.field_names)
        size = self._check_page_size(page_size)
        if offset < 0:
            raise ValidationFault("offset must not be negative", collection=self.name, field="offset")
        return await self._fetch_page(projection, comparisons, size, offset)

    def cursor(
        self,
        projection: Union[Projection, Sequence[str]],
        filter: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> PageCursor:
        projection = self._coerce_projection(projection)
        comparisons = parse_filter(filter, (self.schema.id_field,) + self.schema.field_names)
        size = self._check_page_size(page_size)

        async def fetch(offset: int) -> Page:
            return await self._fetch_page(projection, comparisons, size, offset)

        return PageCursor(fetch)

    async def _fetch_page(
        self,
        projection: Projection,
        comparisons: List[Comparison],
        page_size: int,
        offset: int,
    ) -> Page:
        query = self._table().select(projection.select_clause())
        query = apply_filters(query, comparisons)
        # One extra row tells us whether another page exists
        query = query.order(self.schema.id_field).range(offset, offset + page_size)
        rows = await self._execute(query, "list")

        has_more = len(rows) > page_size
        items = tuple(Item.from_row(row, self.schema, projection.fields) for row in rows[:page_size])

        async def fetch_next(next_offset: int) -> Page:
            return await self._fetch_page(projection, comparisons, page_size, next_offset)

        return Page(
            items=items,
            has_more=has_more,
            continuation=offset + page_size if has_more else None,
            offset=offset,
            _fetch_next=fetch_next,
        )

    async def get_by_id(self, item_id: ItemId, projection: Union[Projection, Sequence[str]]) -> Item:
        projection = self._coerce_projection(projection)
        query = (
            self._table()
            .select(projection.select_clause())
            .eq(self.schema.id_field, item_id)
            .limit(1)
        )
        rows = await self._execute(query, "get", item_id)
        if not rows:
            raise NotFound(f"No item {item_id!r} in {self.name!r}", collection=self.name, item_id=item_id)
        return Item.from_row(rows[0], self.schema, projection.fields)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def create(self, values: Mapping[str, Any]) -> Item:
        items = await self.create_many([values])
        return items[0]

    async def create_many(self, values_list: Iterable[Mapping[str, Any]]) -> List[Item]:
        """Insert several items with a single request."""
        payload = [self.check_create(values) for values in values_list]
        if not payload:
            return []
        rows = await self._execute(self._table().insert(payload), "create")
        if len(rows) != len(payload):
            raise RemoteFault(
                f"Store returned {len(rows)} rows for {len(payload)} inserts",
                collection=self.name,
            )
        return [Item.from_row(row, self.schema, self.schema.field_names) for row in rows]

    async def update(self, item_id: ItemId, values: Mapping[str, Any]) -> None:
        await self.update_returning(item_id, values)

    async def update_returning(self, item_id: ItemId, values: Mapping[str, Any]) -> Item:
        """Merge ``values`` into the item and return the stored result."""
        self.schema.check_values(values)
        if not values:
            raise ValidationFault("Update must change at least one field", collection=self.name)
        for name in self.schema.required_fields:
            if name in values and values[name] is None:
                raise ValidationFault(f"Required field {name!r} cannot be cleared", collection=self.name, field=name)

        query = self._table().update(dict(values)).eq(self.schema.id_field, item_id)
        rows = await self._execute(query, "update", item_id)
        if not rows:
            raise NotFound(f"No item {item_id!r} in {self.name!r}", collection=self.name, item_id=item_id)
        return Item.from_row(rows[0], self.schema, self.schema.field_names)

    async def delete(self, item_id: ItemId, *, missing_ok: bool = True) -> None:
        query = self._table().delete().eq(self.schema.id_field, item_id)
        rows = await self._execute(query, "delete", item_id)
        if rows:
            return
        if not missing_ok:
            raise NotFound(f"No item {item_id!r} in {self.name!r}", collection=self.name, item_id=item_id)
        logger.info(f"Delete of absent item {item_id!r} in {self.name!r} ignored")

    async def batch(self, operations: Union[Batch, Iterable[BatchOperation]]) -> BatchResult:
        if isinstance(operations, Batch):
            return await operations.commit()
        return await Batch(operations, default_service=self).commit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _table(self):
        return self._provider.get_client().table(self.name)

    def _coerce_projection(self, projection: Union[Projection, Sequence[str]]) -> Projection:
        if isinstance(projection, Projection):
            if projection.schema != self.schema:
                raise InvalidProjection(
                    f"Projection for {projection.schema.name!r} used on {self.name!r}",
                    collection=self.name,
                    fields=list(projection.fields),
                )
            return projection
        if isinstance(projection, str):
            projection = [projection]
        return Projection(self.schema, projection)

    def _check_page_size(self, page_size: Optional[int]) -> int:
        size = self.default_page_size if page_size is None else page_size
        if size < 1 or size > self.max_page_size:
            raise ValidationFault(
                f"page_size must be between 1 and {self.max_page_size}",
                collection=self.name,
                field="page_size",
            )
        return size

    def check_create(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        self.schema.check_values(values)
        missing = [name for name in self.schema.required_fields if values.get(name) is None]
        if missing:
            raise ValidationFault(
                f"Missing required fields for {self.name!r}: {', '.join(missing)}",
                collection=self.name,
                field=missing[0],
            )
        return dict(values)

    async def _execute(self, query: Any, action: str, item_id: Optional[ItemId] = None) -> List[Dict[str, Any]]:
        try:
            response = await query.execute()
        except APIError as e:
            raise self._translate(e, action, item_id) from e
        except httpx.HTTPError as e:
            logger.error(f"Transport failure during {action} on {self.name!r}: {e}")
            raise RemoteFault(f"Transport failure during {action}: {e}", collection=self.name) from e
        return list(response.data or [])

    def _translate(self, error: APIError, action: str, item_id: Optional[ItemId]) -> Exception:
        code = getattr(error, "code", None)
        message = getattr(error, "message", None) or str(error)
        logger.error(f"Store rejected {action} on {self.name!r} ({code}): {message}")

        if code in NOT_FOUND_CODES:
            return NotFound(message, collection=self.name, item_id=item_id, code=code)
        if code in VALIDATION_CODES:
            return ValidationFault(message, collection=self.name, code=code)
        if code in PROJECTION_CODES:
            return InvalidProjection(message, collection=self.name, code=code)
        return RemoteFault(message, collection=self.name, code=code)
