import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from supabase import AsyncClient, AsyncClientOptions, acreate_client

from .config import Config
from .errors import ClientAlreadyInitialized, Uninitialized


logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class HostContext:
    """Connection context handed over by the host at startup."""

    url: str
    key: str
    schema: str = "public"

    @classmethod
    def from_config(cls) -> "HostContext":
        return cls(url=Config.SUPABASE_URL, key=Config.SUPABASE_SERVICE_KEY or Config.SUPABASE_ANON_KEY)

    def __repr__(self) -> str:
        return f"HostContext(url={self.url!r}, schema={self.schema!r})"


class ClientProvider:
    """Holds the single store handle shared by all collection services.

    The handle is created once by :meth:`set_client` and read-only afterwards.
    Services receive the provider by reference, so tests can run several
    isolated providers side by side.
    """

    def __init__(self, client_factory: ClientFactory = acreate_client) -> None:
        self._client_factory = client_factory
        self._context: Optional[HostContext] = None
        self._client: Optional[AsyncClient] = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    @property
    def context(self) -> Optional[HostContext]:
        return self._context

    async def set_client(self, context: HostContext) -> AsyncClient:
        if self._context is not None:
            if self._context == context:
                if self._client is None:
                    raise Uninitialized("Client initialization is still in progress")
                return self._client
            raise ClientAlreadyInitialized(url=context.url)

        # Claim the slot before awaiting so a second caller sees it taken
        self._context = context
        try:
            self._client = await self._client_factory(
                context.url,
                context.key,
                options=AsyncClientOptions(schema=context.schema),
            )
        except Exception as e:
            self._context = None
            logger.error(f"Failed to create store client for {context.url}: {e}")
            raise
        logger.info(f"Store client initialized for {context.url}")
        return self._client

    def get_client(self) -> AsyncClient:
        if self._client is None:
            raise Uninitialized()
        return self._client


default_provider = ClientProvider()


async def set_client(context: HostContext) -> AsyncClient:
    return await default_provider.set_client(context)


def get_client() -> AsyncClient:
    return default_provider.get_client()
