"""Typed access layer over paginated, filterable remote collections."""

from .core.client import ClientProvider, HostContext, default_provider, get_client, set_client
from .core.errors import (
    ClientAlreadyInitialized,
    InvalidProjection,
    NoMorePages,
    NotFound,
    RemoteFault,
    RemoteListsError,
    Uninitialized,
    ValidationFault,
)
from .services import (
    Batch,
    BatchOperation,
    BatchRef,
    BatchResult,
    CollectionSchema,
    CollectionService,
    FieldSpec,
    Item,
    Page,
    PageCursor,
    Projection,
    load_schemas,
)
from .ui import CollectionBinding, Error, Loading, Ready, WriteStrategy

__version__ = "1.0.0"
