import pytest
import pytest_asyncio

from remotelists.core.client import ClientProvider, HostContext
from remotelists.services.collection_service import CollectionService
from remotelists.services.schema import CollectionSchema, FieldSpec

from .fakes import FakeStore, fake_factory


CONTEXT = HostContext(url="https://example.supabase.co", key="service-key")


@pytest.fixture
def store():
    return FakeStore(id_fields={"tasks": "Id"})


@pytest.fixture
def tasks_schema():
    return CollectionSchema(
        name="tasks",
        fields=(
            FieldSpec("Title", required=True),
            FieldSpec("Status", required=True),
            FieldSpec("Assignee"),
            FieldSpec("Priority"),
        ),
        id_field="Id",
    )


@pytest.fixture
def comments_schema():
    return CollectionSchema(
        name="comments",
        fields=(FieldSpec("task_id", required=True), FieldSpec("body", required=True)),
    )


@pytest_asyncio.fixture
async def provider(store):
    provider = ClientProvider(client_factory=fake_factory(store))
    await provider.set_client(CONTEXT)
    return provider


@pytest.fixture
def tasks(provider, tasks_schema):
    return CollectionService(provider, tasks_schema, default_page_size=100, max_page_size=500)


@pytest.fixture
def comments(provider, comments_schema):
    return CollectionService(provider, comments_schema)
