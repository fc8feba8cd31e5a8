"""Typed mutations sent to the remote store or staged in the offline queue.

Each operation is one of Insert, Update or Delete. Inserts and updates carry
a record whose concrete shape is fixed by the target entity.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from ..db.schemas import (
    ActivityLogRecord,
    Entity,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    Settings,
    TitleRecord,
    utcnow,
)
from ..db.snapshot import CirculationSnapshot, EntityRecord


class OperationKind(str, Enum):
    """Kind of remote mutation."""

    INSERT = "Insert"
    UPDATE = "Update"
    DELETE = "Delete"


RECORD_TYPES: dict[Entity, type[BaseModel]] = {
    Entity.TITLES: TitleRecord,
    Entity.MEMBERS: MemberRecord,
    Entity.LOAN_EVENTS: LoanEventRecord,
    Entity.RESERVATIONS: ReservationRecord,
    Entity.SETTINGS: Settings,
    Entity.ACTIVITY_LOG: ActivityLogRecord,
}

# Settings live in a single remote row
SETTINGS_ROW_ID = "1"


class _RecordOperation(BaseModel):
    """Operation carrying a full record."""

    entity: Entity
    record: EntityRecord

    @model_validator(mode="before")
    @classmethod
    def _parse_record_for_entity(cls, data: Any) -> Any:
        """Parse a raw record with the model its entity dictates."""
        if isinstance(data, dict) and isinstance(data.get("record"), dict):
            entity = data.get("entity")
            if entity is None:
                return data
            record_type = RECORD_TYPES[Entity(entity)]
            data = {**data, "record": record_type.model_validate(data["record"])}
        return data

    @model_validator(mode="after")
    def _check_record_shape(self) -> "_RecordOperation":
        expected = RECORD_TYPES[self.entity]
        if not isinstance(self.record, expected):
            raise ValueError(
                f"{self.entity.value} expects {expected.__name__}, "
                f"got {type(self.record).__name__}"
            )
        return self

    def payload(self) -> dict:
        """Record as JSON-ready dict."""
        return self.record.model_dump(mode="json")


class InsertOperation(_RecordOperation):
    """Insert a new record."""

    kind: Literal[OperationKind.INSERT] = OperationKind.INSERT

    @property
    def record_id(self) -> str:
        return getattr(self.record, "id", SETTINGS_ROW_ID)

    def apply_to(self, snapshot: CirculationSnapshot) -> None:
        snapshot.upsert(self.entity, self.record)


class UpdateOperation(_RecordOperation):
    """Replace a record keyed by id."""

    kind: Literal[OperationKind.UPDATE] = OperationKind.UPDATE
    record_id: str

    def apply_to(self, snapshot: CirculationSnapshot) -> None:
        snapshot.upsert(self.entity, self.record)


class DeleteOperation(BaseModel):
    """Delete a record by id."""

    kind: Literal[OperationKind.DELETE] = OperationKind.DELETE
    entity: Entity
    record_id: str

    def payload(self) -> dict:
        return {"id": self.record_id}

    def apply_to(self, snapshot: CirculationSnapshot) -> None:
        snapshot.remove(self.entity, self.record_id)


Operation = Annotated[
    Union[InsertOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="kind"),
]


class QueueEntry(BaseModel):
    """An operation staged while the remote store was unreachable."""

    operation: Operation
    enqueued_at: datetime = Field(default_factory=utcnow)

    @property
    def entity(self) -> Entity:
        return self.operation.entity

    @property
    def kind(self) -> OperationKind:
        return self.operation.kind

    def describe(self) -> str:
        return f"{self.kind.value} {self.entity.value}/{self.operation.record_id}"


def insert(entity: Entity, record: EntityRecord) -> InsertOperation:
    return InsertOperation(entity=entity, record=record)


def update(entity: Entity, record: EntityRecord) -> UpdateOperation:
    record_id = getattr(record, "id", SETTINGS_ROW_ID)
    return UpdateOperation(entity=entity, record=record, record_id=record_id)


def delete(entity: Entity, record_id: str) -> DeleteOperation:
    return DeleteOperation(entity=entity, record_id=record_id)
