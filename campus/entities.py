"""Entity descriptors: the declarative rule set behind every resource."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


OPERATIONS = frozenset({"list", "get", "create", "update", "delete"})

NO_UPDATES_RETURN_UNCHANGED = "return_unchanged"
NO_UPDATES_REJECT = "reject"
# refresh the updated stamp even when no field changed
NO_UPDATES_TOUCH = "touch"

_NO_DEFAULT = object()


def code_suffix(name: str) -> str:
    """customId -> CUSTOM_ID"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = "string"
    required: bool = False
    updatable: bool = True
    default: Any = _NO_DEFAULT
    choices: tuple = ()
    pattern: str | None = None
    pattern_code: str | None = None
    blank_to_none: bool = False
    missing_code: str | None = None
    invalid_code: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT

    @property
    def missing(self) -> str:
        return self.missing_code or f"MISSING_{code_suffix(self.name)}"

    @property
    def invalid(self) -> str:
        return self.invalid_code or f"INVALID_{code_suffix(self.name)}"


@dataclass(frozen=True)
class Unique:
    field: str
    code: str
    message: str


@dataclass(frozen=True)
class ForeignKey:
    field: str
    table: str
    code: str
    message: str


@dataclass(frozen=True)
class ScopeFilter:
    param: str
    field: str
    kind: str = "integer"
    invalid_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class KeyLookup:
    """Secondary lookup key served on the collection endpoint."""

    field: str
    param: str
    default: str | None = None
    missing_code: str = "MISSING_KEY"
    message: str = "Key is required"


@dataclass(frozen=True)
class EntityDescriptor:
    resource: str
    table: str
    label: str
    fields: tuple[FieldSpec, ...]
    search_fields: tuple[str, ...] = ()
    bool_filters: tuple[str, ...] = ()
    scopes: tuple[ScopeFilter, ...] = ()
    order: tuple[tuple[str, str], ...] = (("id", "asc"),)
    unique: tuple[Unique, ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = ()
    created_field: str | None = "createdAt"
    updated_field: str | None = None
    not_found_code: str = "NOT_FOUND"
    no_updates: str = NO_UPDATES_RETURN_UNCHANGED
    delete_key: str = "record"
    key_lookup: KeyLookup | None = None
    operations: frozenset = OPERATIONS

    def get_field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    @property
    def not_found_message(self) -> str:
        return f"{self.label} not found"

    @property
    def deleted_message(self) -> str:
        return f"{self.label} deleted successfully"


def _text(name: str, required: bool = True, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, kind="string", required=required, **kwargs)


STUDENT = EntityDescriptor(
    resource="students",
    table="students",
    label="Student",
    fields=(
        _text("customId", updatable=False),
        _text("name"),
        _text("department"),
        _text("password"),
        FieldSpec("profileImageUrl", kind="nullable_string", default=None, blank_to_none=True),
    ),
    search_fields=("name", "department"),
    unique=(Unique("customId", "DUPLICATE_CUSTOM_ID", "Custom ID already exists"),),
    not_found_code="STUDENT_NOT_FOUND",
    delete_key="student",
)

COORDINATOR = EntityDescriptor(
    resource="coordinators",
    table="coordinators",
    label="Coordinator",
    fields=(
        _text(
            "customId",
            updatable=False,
            pattern=r"COORD\d+",
            pattern_code="INVALID_CUSTOM_ID_FORMAT",
        ),
        _text("name"),
        _text("department"),
        _text("password"),
        FieldSpec("isActive", kind="boolean", default=True),
    ),
    search_fields=("name", "department"),
    bool_filters=("isActive",),
    order=(("createdAt", "desc"), ("id", "desc")),
    unique=(Unique("customId", "DUPLICATE_CUSTOM_ID", "customId already exists"),),
    delete_key="coordinator",
)

OFFICER = EntityDescriptor(
    resource="officer-credentials",
    table="officer_credentials",
    label="Officer credentials",
    fields=(
        _text("officerId", updatable=False),
        _text("password"),
    ),
    unique=(Unique("officerId", "DUPLICATE_OFFICER_ID", "Officer ID already exists"),),
    created_field=None,
    updated_field="updatedAt",
    no_updates=NO_UPDATES_REJECT,
    delete_key="officer",
    key_lookup=KeyLookup(
        field="officerId",
        param="officerId",
        default="OFFICER001",
        missing_code="MISSING_OFFICER_ID",
        message="Officer ID is required",
    ),
)

DEPARTMENT = EntityDescriptor(
    resource="departments",
    table="departments",
    label="Department",
    fields=(
        _text("name"),
        FieldSpec("isActive", kind="boolean", default=True),
    ),
    search_fields=("name",),
    bool_filters=("isActive",),
    unique=(Unique("name", "DUPLICATE_NAME", "Department with this name already exists"),),
    not_found_code="DEPARTMENT_NOT_FOUND",
    delete_key="department",
)

PROGRAM = EntityDescriptor(
    resource="programs",
    table="programs",
    label="Program",
    fields=(
        _text("title"),
        _text("description"),
        _text("date"),
        _text("time"),
        _text("venue"),
        FieldSpec("coordinatorIds", kind="id_list", default=[]),
        FieldSpec("participantIds", kind="id_list", default=[]),
    ),
    search_fields=("title",),
    updated_field="updatedAt",
    delete_key="program",
)

STUDENT_ACTIVITY = EntityDescriptor(
    resource="student-activities",
    table="student_activities",
    label="Student activity",
    fields=(
        _text("studentCustomId"),
        FieldSpec("badge", kind="enum", required=True, choices=("green", "yellow")),
        _text("title"),
        _text("content"),
    ),
    scopes=(ScopeFilter("studentId", "studentCustomId", kind="string"),),
    no_updates=NO_UPDATES_REJECT,
    delete_key="deletedActivity",
)

STORY_BATCH = EntityDescriptor(
    resource="story-batches",
    table="story_batches",
    label="Story batch",
    fields=(_text("name", missing_code="MISSING_REQUIRED_FIELD"),),
    order=(("createdAt", "desc"), ("id", "desc")),
    not_found_code="BATCH_NOT_FOUND",
    delete_key="batch",
)

STORY_ALBUM = EntityDescriptor(
    resource="story-albums",
    table="story_albums",
    label="Story album",
    fields=(
        FieldSpec("batchId", kind="integer", required=True),
        _text("name"),
    ),
    scopes=(ScopeFilter("batchId", "batchId", invalid_code="INVALID_BATCH_ID", message="Invalid batch ID"),),
    foreign_keys=(ForeignKey("batchId", "story_batches", "BATCH_NOT_FOUND", "Story batch not found"),),
    not_found_code="ALBUM_NOT_FOUND",
    delete_key="deletedAlbum",
)

STORY_MEDIA = EntityDescriptor(
    resource="story-media",
    table="story_media",
    label="Story media",
    fields=(
        FieldSpec("albumId", kind="integer", required=True),
        FieldSpec("type", kind="enum", required=True, choices=("image", "video")),
        _text("url"),
        FieldSpec("title", kind="nullable_string", default=None, blank_to_none=True),
        FieldSpec("isFeatured", kind="boolean", default=False),
    ),
    bool_filters=("isFeatured",),
    scopes=(ScopeFilter("albumId", "albumId", invalid_code="INVALID_ALBUM_ID", message="Invalid albumId parameter"),),
    foreign_keys=(ForeignKey("albumId", "story_albums", "ALBUM_NOT_FOUND", "Album not found"),),
    updated_field="updatedAt",
    no_updates=NO_UPDATES_TOUCH,
    delete_key="data",
)


ENTITIES: dict[str, EntityDescriptor] = {
    entity.resource: entity
    for entity in (
        STUDENT,
        COORDINATOR,
        OFFICER,
        DEPARTMENT,
        PROGRAM,
        STUDENT_ACTIVITY,
        STORY_BATCH,
        STORY_ALBUM,
        STORY_MEDIA,
    )
}


def get_entity(resource: str) -> EntityDescriptor | None:
    if not isinstance(resource, str):
        return None
    return ENTITIES.get(resource.strip("/").strip())
