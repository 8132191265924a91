import httpx
import pytest
from postgrest.exceptions import APIError

from remotelists.core.client import ClientProvider
from remotelists.core.errors import (
    InvalidProjection,
    NotFound,
    RemoteFault,
    Uninitialized,
    ValidationFault,
)
from remotelists.services.collection_service import CollectionService
from remotelists.services.schema import Item

from .fakes import fake_factory


ACTIVE = [{"Title": f"Active {n}", "Status": "Active"} for n in range(5)]
INACTIVE = [{"Title": f"Old {n}", "Status": "Closed"} for n in range(3)]


@pytest.fixture
def seeded(store):
    # Interleave so active items are not contiguous by identifier
    rows = []
    for i in range(5):
        rows.append(ACTIVE[i])
        if i < 3:
            rows.append(INACTIVE[i])
    return store.seed("tasks", rows)


async def test_create_then_get_returns_same_fields(tasks):
    values = {"Title": "Write report", "Status": "Active", "Priority": 2}

    created = await tasks.create(values)
    fetched = await tasks.get_by_id(created.id, ["Title", "Status", "Priority"])

    assert created.id is not None
    assert fetched == Item(created.id, values)
    assert created["Assignee"] is None


async def test_create_rejects_identifier_unknown_and_missing_fields(tasks, store):
    with pytest.raises(ValidationFault):
        await tasks.create({"Id": 7, "Title": "x", "Status": "Active"})
    with pytest.raises(ValidationFault):
        await tasks.create({"Title": "x", "Status": "Active", "Colour": "red"})
    with pytest.raises(ValidationFault) as info:
        await tasks.create({"Title": "x"})

    assert info.value.details["field"] == "Status"
    assert store.requests == []


async def test_updates_merge_field_by_field(tasks):
    created = await tasks.create({"Title": "Draft", "Status": "Active", "Priority": 1})

    await tasks.update(created.id, {"Priority": 2})
    await tasks.update(created.id, {"Assignee": "sam"})
    await tasks.update(created.id, {"Priority": 3})

    item = await tasks.get_by_id(created.id, ["Title", "Status", "Priority", "Assignee"])
    assert item.fields == {"Title": "Draft", "Status": "Active", "Priority": 3, "Assignee": "sam"}


async def test_update_errors(tasks):
    created = await tasks.create({"Title": "Draft", "Status": "Active"})

    with pytest.raises(NotFound):
        await tasks.update(9999, {"Priority": 2})
    with pytest.raises(ValidationFault):
        await tasks.update(created.id, {})
    with pytest.raises(ValidationFault):
        await tasks.update(created.id, {"Id": 5})
    with pytest.raises(ValidationFault):
        await tasks.update(created.id, {"Title": None})


async def test_delete_then_get_raises_not_found(tasks):
    created = await tasks.create({"Title": "Temp", "Status": "Active"})

    await tasks.delete(created.id)

    with pytest.raises(NotFound):
        await tasks.get_by_id(created.id, ["Title"])


async def test_delete_of_absent_item_is_idempotent(tasks):
    await tasks.delete(4242)

    with pytest.raises(NotFound):
        await tasks.delete(4242, missing_ok=False)


async def test_projection_returns_exactly_requested_fields(tasks, seeded):
    page = await tasks.list(["Title"], page_size=3)

    assert len(page) == 3
    for item in page:
        assert set(item.fields) == {"Title"}


async def test_invalid_projection_rejected_before_io(tasks, store):
    with pytest.raises(InvalidProjection):
        await tasks.list(["Title", "Colour"])
    with pytest.raises(InvalidProjection):
        await tasks.get_by_id(1, ["Nope"])
    with pytest.raises(InvalidProjection):
        tasks.projection("Missing")

    assert store.requests == []


async def test_projection_from_other_collection_rejected(tasks, comments):
    with pytest.raises(InvalidProjection):
        await tasks.list(comments.projection("body"))


async def test_page_size_is_bounded(tasks):
    with pytest.raises(ValidationFault):
        await tasks.list(["Title"], page_size=0)
    with pytest.raises(ValidationFault):
        await tasks.list(["Title"], page_size=501)


async def test_filtered_paging_scenario(tasks, seeded):
    page = await tasks.list(["Id", "Title"], filter="Status eq 'Active'", page_size=2)

    assert len(page) == 2
    assert page.has_next()

    seen = list(page.items)
    while page.has_next():
        page = await page.next()
        seen.extend(page.items)

    assert len(seen) == 5
    assert {item["Title"] for item in seen} == {row["Title"] for row in ACTIVE}
    assert not page.has_next()


async def test_filter_on_unknown_field_rejected(tasks):
    with pytest.raises(InvalidProjection):
        await tasks.list(["Title"], filter="Colour eq 'red'")


async def test_default_page_size_applies(provider, tasks_schema, store):
    store.seed("tasks", [{"Title": str(n), "Status": "Active"} for n in range(7)])
    service = CollectionService(provider, tasks_schema, default_page_size=5, max_page_size=10)

    page = await service.list(["Title"])

    assert len(page) == 5
    assert page.continuation == 5


async def test_store_errors_are_normalized(tasks, store):
    store.fail_next(APIError({"message": "permission denied", "code": "42501", "details": None, "hint": None}))
    with pytest.raises(RemoteFault):
        await tasks.list(["Title"])

    store.fail_next(APIError({"message": "null value", "code": "23502", "details": None, "hint": None}))
    with pytest.raises(ValidationFault):
        await tasks.create({"Title": "x", "Status": "Active"})

    store.fail_next(httpx.ConnectError("connection refused"))
    with pytest.raises(RemoteFault):
        await tasks.get_by_id(1, ["Title"])


async def test_operations_require_initialized_provider(tasks_schema, store):
    service = CollectionService(ClientProvider(client_factory=fake_factory(store)), tasks_schema)

    with pytest.raises(Uninitialized):
        await service.list(["Title"])


async def test_create_many_uses_one_request(tasks, store):
    items = await tasks.create_many([
        {"Title": "a", "Status": "Active"},
        {"Title": "b", "Status": "Active"},
    ])

    assert [i["Title"] for i in items] == ["a", "b"]
    assert store.requests == [("insert", "tasks")]
