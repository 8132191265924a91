import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .core.client import ClientProvider, HostContext, default_provider
from .core.config import Config
from .core.errors import RemoteListsError
from .core.middleware import global_exception_handler, log_requests, remote_lists_exception_handler
from .core.validation import parse_fields, parse_item_id, validate_filter, validate_inputs
from .services.batch import Batch, BatchOutcome, BatchRef
from .services.collection_service import CollectionService
from .services.schema import CollectionSchema, Item, load_schemas

logger = logging.getLogger(__name__)


class ItemRef(BaseModel):
    ref: int


class BatchOperationIn(BaseModel):
    op: Literal["create", "update", "delete"]
    id: Optional[Union[ItemRef, int, str]] = None
    values: Dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseModel):
    operations: List[BatchOperationIn]


def _serialize(service: CollectionService, item: Item) -> Dict[str, Any]:
    return item.to_dict(service.schema.id_field)


def _serialize_outcome(service: CollectionService, outcome: BatchOutcome) -> Dict[str, Any]:
    body: Dict[str, Any] = {"index": outcome.index, "ok": outcome.ok, "value": None, "error": None}
    if isinstance(outcome.value, Item):
        body["value"] = _serialize(service, outcome.value)
    if isinstance(outcome.error, RemoteListsError):
        body["error"] = {"detail": outcome.error.user_message, "error_code": outcome.error.error_code}
    return body


def create_app(
    schemas: Optional[Mapping[str, CollectionSchema]] = None,
    provider: Optional[ClientProvider] = None,
    context: Optional[HostContext] = None,
) -> FastAPI:
    """Build the HTTP host for the configured collections.

    The store client is initialized exactly once, when the app starts.
    """
    provider = provider or default_provider

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal schemas, context
        if context is None:
            Config.validate()
            context = HostContext.from_config()
        if schemas is None:
            schemas = load_schemas(Config.COLLECTIONS_FILE)
        await provider.set_client(context)
        app.state.services = {
            name: CollectionService(provider, schema) for name, schema in schemas.items()
        }
        logger.info(f"Serving collections: {', '.join(sorted(app.state.services)) or '(none)'}")
        yield

    app = FastAPI(title="Remote Lists API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request, call_next):
        return await log_requests(request, call_next)

    app.add_exception_handler(RemoteListsError, remote_lists_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    def service_for(request: Request, name: str) -> CollectionService:
        validate_inputs(collection=name)
        service = request.app.state.services.get(name)
        if service is None:
            raise HTTPException(status_code=404, detail=f"Unknown collection: {name}")
        return service

    @app.get("/collections/{name}/items")
    async def list_items(
        request: Request,
        name: str,
        fields: Optional[str] = None,
        filter: Optional[str] = None,
        page_size: Optional[int] = None,
        offset: int = 0,
    ):
        service = service_for(request, name)
        validate_filter(filter)
        projection = parse_fields(fields) or list(service.schema.field_names)
        page = await service.list(projection, filter, page_size, offset=offset)
        return {
            "items": [_serialize(service, item) for item in page.items],
            "has_more": page.has_more,
            "next_offset": page.continuation,
        }

    @app.get("/collections/{name}/items/{item_id}")
    async def get_item(request: Request, name: str, item_id: str, fields: Optional[str] = None):
        service = service_for(request, name)
        projection = parse_fields(fields) or list(service.schema.field_names)
        item = await service.get_by_id(parse_item_id(item_id), projection)
        return _serialize(service, item)

    @app.post("/collections/{name}/items", status_code=201)
    async def create_item(request: Request, name: str, values: Dict[str, Any]):
        service = service_for(request, name)
        item = await service.create(values)
        return _serialize(service, item)

    @app.patch("/collections/{name}/items/{item_id}", status_code=204)
    async def update_item(request: Request, name: str, item_id: str, values: Dict[str, Any]):
        service = service_for(request, name)
        await service.update(parse_item_id(item_id), values)

    @app.delete("/collections/{name}/items/{item_id}", status_code=204)
    async def delete_item(request: Request, name: str, item_id: str):
        service = service_for(request, name)
        await service.delete(parse_item_id(item_id))

    @app.post("/collections/{name}/batch")
    async def run_batch(request: Request, name: str, body: BatchRequest):
        service = service_for(request, name)
        batch = Batch(default_service=service)
        for entry in body.operations:
            item_id = BatchRef(entry.id.ref) if isinstance(entry.id, ItemRef) else entry.id
            if entry.op == "create":
                batch.create(service, entry.values)
            elif entry.op == "update":
                batch.update(service, item_id, entry.values)
            else:
                batch.delete(service, item_id)
        result = await service.batch(batch)
        return {
            "ok": result.ok,
            "outcomes": [_serialize_outcome(service, outcome) for outcome in result],
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Basic health and store connectivity check."""
        health_start_time = time.time()

        try:
            for service in request.app.state.services.values():
                await service.list([], page_size=1)
                break

            health_duration = time.time() - health_start_time
            return {
                "status": "healthy",
                "service": "remote-lists-api",
                "timestamp": datetime.now().isoformat(),
                "response_time_ms": round(health_duration * 1000, 2)
            }
        except Exception as e:
            health_duration = time.time() - health_start_time
            logger.error(f"Health check failed: {str(e)} - Duration: {health_duration:.1f}s")

            return {
                "status": "unhealthy",
                "service": "remote-lists-api",
                "timestamp": datetime.now().isoformat(),
                "error": type(e).__name__,
                "response_time_ms": round(health_duration * 1000, 2)
            }

    @app.get("/")
    async def root(request: Request):
        """Return basic API information."""
        return {
            "service": "Remote Lists API",
            "version": "1.0",
            "collections": sorted(request.app.state.services),
            "endpoints": {
                "items": "/collections/{name}/items",
                "batch": "/collections/{name}/batch",
                "health": "/health"
            },
            "timestamp": datetime.now().isoformat(),
        }

    return app
