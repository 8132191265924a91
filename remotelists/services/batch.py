"""Batched writes across one or more collections.

Operations run in submission order. Each one gets its own outcome; a failure
never aborts its siblings or undoes effects already committed. Runs of
consecutive creates against the same collection go out as one bulk insert.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from ..core.errors import RemoteListsError, ValidationFault


logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class BatchRef:
    """Identifier of the item created by an earlier operation in the batch."""

    index: int


@dataclass
class BatchOperation:
    kind: str
    service: Any = None
    item_id: Any = None
    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, values: Mapping[str, Any], service: Any = None) -> "BatchOperation":
        return cls(CREATE, service, None, values)

    @classmethod
    def update(cls, item_id: Any, values: Mapping[str, Any], service: Any = None) -> "BatchOperation":
        return cls(UPDATE, service, item_id, values)

    @classmethod
    def delete(cls, item_id: Any, service: Any = None) -> "BatchOperation":
        return cls(DELETE, service, item_id)

    def refs(self) -> List[BatchRef]:
        found = [v for v in self.values.values() if isinstance(v, BatchRef)]
        if isinstance(self.item_id, BatchRef):
            found.append(self.item_id)
        return found


@dataclass
class BatchOutcome:
    index: int
    operation: BatchOperation
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    outcomes: List[BatchOutcome]

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[BatchOutcome]:
        return iter(self.outcomes)

    def __getitem__(self, index: int) -> BatchOutcome:
        return self.outcomes[index]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def errors(self) -> List[BatchOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def values(self) -> List[Any]:
        return [o.value for o in self.outcomes]

    def raise_for_errors(self) -> None:
        """Raise the first per-operation error, if any."""
        for outcome in self.outcomes:
            if outcome.error is not None:
                raise outcome.error


class Batch:
    def __init__(self, operations: Optional[Iterable[BatchOperation]] = None, default_service: Any = None) -> None:
        self._default_service = default_service
        self._operations: List[BatchOperation] = []
        self._committed = False
        for operation in operations or []:
            self.add(operation)

    def __len__(self) -> int:
        return len(self._operations)

    def add(self, operation: BatchOperation) -> BatchRef:
        if self._committed:
            raise ValidationFault("Batch has already been committed")
        if operation.kind not in (CREATE, UPDATE, DELETE):
            raise ValidationFault(f"Unknown batch operation {operation.kind!r}")
        if operation.service is None:
            if self._default_service is None:
                raise ValidationFault(f"Batch operation {operation.kind!r} has no collection")
            operation = replace(operation, service=self._default_service)

        index = len(self._operations)
        for ref in operation.refs():
            if not 0 <= ref.index < index:
                raise ValidationFault(f"Batch reference {ref.index} must point at an earlier operation")
            if self._operations[ref.index].kind != CREATE:
                raise ValidationFault(f"Batch reference {ref.index} does not point at a create")
        self._operations.append(operation)
        return BatchRef(index)

    def create(self, service: Any, values: Mapping[str, Any]) -> BatchRef:
        return self.add(BatchOperation.create(values, service))

    def update(self, service: Any, item_id: Any, values: Mapping[str, Any]) -> BatchRef:
        return self.add(BatchOperation.update(item_id, values, service))

    def delete(self, service: Any, item_id: Any) -> BatchRef:
        return self.add(BatchOperation.delete(item_id, service))

    async def commit(self) -> BatchResult:
        if self._committed:
            raise ValidationFault("Batch has already been committed")
        self._committed = True

        outcomes: Dict[int, BatchOutcome] = {}
        ops = self._operations
        i = 0
        while i < len(ops):
            op = ops[i]
            if op.kind == CREATE and not op.refs():
                run_end = i + 1
                while (
                    run_end < len(ops)
                    and ops[run_end].kind == CREATE
                    and ops[run_end].service is op.service
                    and not ops[run_end].refs()
                ):
                    run_end += 1
                await self._run_creates(range(i, run_end), outcomes)
                i = run_end
                continue

            outcome = BatchOutcome(i, op)
            try:
                outcome.value = await self._run_one(op, outcomes)
            except RemoteListsError as e:
                outcome.error = e
            outcomes[i] = outcome
            i += 1

        result = BatchResult([outcomes[i] for i in range(len(ops))])
        if result.errors:
            logger.warning(f"Batch of {len(result)} operations finished with {len(result.errors)} failure(s)")
        return result

    async def _run_creates(self, indexes: range, outcomes: Dict[int, BatchOutcome]) -> None:
        # Invalid values fail on their own; only the rest share the insert
        valid: List[int] = []
        payload: List[Dict[str, Any]] = []
        for i in indexes:
            op = self._operations[i]
            try:
                payload.append(op.service.check_create(op.values))
            except ValidationFault as e:
                outcomes[i] = BatchOutcome(i, op, error=e)
                continue
            valid.append(i)
        if not valid:
            return

        service = self._operations[valid[0]].service
        try:
            items = await service.create_many(payload)
        except RemoteListsError as e:
            for i in valid:
                outcomes[i] = BatchOutcome(i, self._operations[i], error=e)
            return
        for i, item in zip(valid, items):
            outcomes[i] = BatchOutcome(i, self._operations[i], value=item)

    async def _run_one(self, op: BatchOperation, outcomes: Dict[int, BatchOutcome]) -> Any:
        item_id = self._resolve(op.item_id, outcomes)
        values = {key: self._resolve(value, outcomes) for key, value in op.values.items()}

        if op.kind == CREATE:
            return await op.service.create(values)
        if op.kind == UPDATE:
            return await op.service.update_returning(item_id, values)
        await op.service.delete(item_id)
        return None

    @staticmethod
    def _resolve(value: Any, outcomes: Dict[int, BatchOutcome]) -> Any:
        if not isinstance(value, BatchRef):
            return value
        source = outcomes[value.index]
        if not source.ok:
            raise ValidationFault(f"Depends on failed batch operation {value.index}")
        return source.value.id
