from .batch import Batch, BatchOperation, BatchOutcome, BatchRef, BatchResult
from .collection_service import CollectionService
from .paging import Page, PageCursor
from .schema import CollectionSchema, FieldSpec, Item, Projection, load_schemas

__all__ = [
    "Batch",
    "BatchOperation",
    "BatchOutcome",
    "BatchRef",
    "BatchResult",
    "CollectionSchema",
    "CollectionService",
    "FieldSpec",
    "Item",
    "Page",
    "PageCursor",
    "Projection",
    "load_schemas",
]
