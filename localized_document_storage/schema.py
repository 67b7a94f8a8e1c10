"""
Field schema for localized collections.

Declares collections, globals, their fields and block types. Every other
component reads its static metadata from here: whether a field is localized
decides the stored shape, the resolver's lookup and how a query path is
interpreted.

Example:
    >>> posts = CollectionConfig(
    ...     slug="posts",
    ...     fields=[
    ...         Field("title", FieldType.TEXT, localized=True, required=True),
    ...         Field("author", FieldType.RELATIONSHIP, relation_to="users"),
    ...     ],
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import CollectionNotFoundError, SchemaError

# Keys written by the storage layer itself rather than declared as fields.
ID_KEY = "id"
BLOCK_TYPE_KEY = "blockType"
CREATED_AT_KEY = "createdAt"
UPDATED_AT_KEY = "updatedAt"

DOCUMENT_SYSTEM_KEYS = (ID_KEY, CREATED_AT_KEY, UPDATED_AT_KEY)
ROW_SYSTEM_KEYS = (ID_KEY, BLOCK_TYPE_KEY)

# Globals are persisted as ordinary documents in this reserved collection.
GLOBALS_COLLECTION = "_globals"


class FieldType(Enum):
    """Supported field types."""

    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    SELECT = "select"
    DATE = "date"
    JSON = "json"
    GROUP = "group"
    ARRAY = "array"
    BLOCKS = "blocks"
    RELATIONSHIP = "relationship"


SCALAR_TYPES = frozenset(
    {
        FieldType.TEXT,
        FieldType.TEXTAREA,
        FieldType.EMAIL,
        FieldType.NUMBER,
        FieldType.CHECKBOX,
        FieldType.SELECT,
        FieldType.DATE,
        FieldType.JSON,
    }
)


@dataclass
class Field:
    """A declared field.

    Attributes:
        name: Key under which the value is stored
        type: Field type
        localized: Store one value per locale instead of one shared value
        required: Reject writes that leave the field empty for the target locale
        fields: Sub-fields of a group or array
        blocks: Allowed block types of a blocks field
        relation_to: Target collection slug, or a list of slugs for a
            polymorphic relationship
        has_many: Relationship holds a list of references
        default_value: Value seeded on create when the field is not supplied
        options: Allowed values of a select field
    """

    name: str
    type: FieldType
    localized: bool = False
    required: bool = False
    fields: list[Field] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    relation_to: str | list[str] | None = None
    has_many: bool = False
    default_value: Any = None
    options: list[str] = field(default_factory=list)

    @property
    def is_polymorphic(self) -> bool:
        """Relationship whose references carry their own collection tag."""
        return self.type is FieldType.RELATIONSHIP and isinstance(self.relation_to, list)

    @property
    def targets(self) -> list[str]:
        """Collections a relationship may point at."""
        if self.relation_to is None:
            return []
        if isinstance(self.relation_to, list):
            return list(self.relation_to)
        return [self.relation_to]

    @property
    def has_rows(self) -> bool:
        return self.type in (FieldType.ARRAY, FieldType.BLOCKS)

    def subfield(self, name: str) -> Field | None:
        """Look up a sub-field; for blocks, the first block declaring it wins."""
        if self.type is FieldType.BLOCKS:
            for block in self.blocks:
                for sub in block.fields:
                    if sub.name == name:
                        return sub
            return None
        for sub in self.fields:
            if sub.name == name:
                return sub
        return None

    def block(self, slug: str | None) -> Block | None:
        for block in self.blocks:
            if block.slug == slug:
                return block
        return None


@dataclass
class Block:
    """A block type usable in a blocks field; rows are tagged by ``blockType``."""

    slug: str
    fields: list[Field] = field(default_factory=list)


@dataclass
class CollectionConfig:
    """A collection of documents sharing one field list."""

    slug: str
    fields: list[Field] = field(default_factory=list)
    timestamps: bool = True

    def get_field(self, name: str) -> Field | None:
        for declared in self.fields:
            if declared.name == name:
                return declared
        return None


@dataclass
class GlobalConfig(CollectionConfig):
    """A singleton document addressed by its slug."""


class Schema:
    """Registry of declared collections and globals.

    The declaration is checked once on construction so that the merger,
    resolver and query translator can trust the metadata they read.
    """

    def __init__(
        self,
        collections: list[CollectionConfig],
        global_configs: list[GlobalConfig] | None = None,
    ):
        self._collections: dict[str, CollectionConfig] = {}
        self._globals: dict[str, GlobalConfig] = {}

        for collection in collections:
            if collection.slug in self._collections:
                raise SchemaError("duplicate collection slug", collection.slug)
            if collection.slug == GLOBALS_COLLECTION:
                raise SchemaError("collection slug is reserved", collection.slug)
            self._collections[collection.slug] = collection

        for global_config in global_configs or []:
            if global_config.slug in self._globals:
                raise SchemaError("duplicate global slug", global_config.slug)
            self._globals[global_config.slug] = global_config

        for config in [*self._collections.values(), *self._globals.values()]:
            self._check_fields(config.slug, config.fields, DOCUMENT_SYSTEM_KEYS)

    @property
    def collections(self) -> list[CollectionConfig]:
        return list(self._collections.values())

    @property
    def globals(self) -> list[GlobalConfig]:
        return list(self._globals.values())

    def collection(self, slug: str) -> CollectionConfig:
        """Get a collection by slug, or raise CollectionNotFoundError."""
        try:
            return self._collections[slug]
        except KeyError:
            raise CollectionNotFoundError(slug) from None

    def global_config(self, slug: str) -> GlobalConfig:
        """Get a global by slug, or raise CollectionNotFoundError."""
        try:
            return self._globals[slug]
        except KeyError:
            raise CollectionNotFoundError(slug) from None

    def has_collection(self, slug: str) -> bool:
        return slug in self._collections

    def _check_fields(
        self, slug: str, fields: list[Field], reserved: tuple[str, ...]
    ) -> None:
        seen: set[str] = set()
        for declared in fields:
            if not declared.name:
                raise SchemaError("field without a name", slug)
            if declared.name in reserved:
                raise SchemaError(f"field name {declared.name!r} is reserved", slug)
            if declared.name in seen:
                raise SchemaError(f"duplicate field {declared.name!r}", slug)
            if "." in declared.name:
                raise SchemaError(f"field name {declared.name!r} contains a dot", slug)
            seen.add(declared.name)

            if declared.type is FieldType.GROUP:
                self._check_fields(slug, declared.fields, ())
            elif declared.type is FieldType.ARRAY:
                self._check_fields(slug, declared.fields, ROW_SYSTEM_KEYS)
            elif declared.type is FieldType.BLOCKS:
                if not declared.blocks:
                    raise SchemaError(f"blocks field {declared.name!r} declares no blocks", slug)
                block_slugs = [block.slug for block in declared.blocks]
                if len(set(block_slugs)) != len(block_slugs):
                    raise SchemaError(f"duplicate block slug in {declared.name!r}", slug)
                for block in declared.blocks:
                    self._check_fields(slug, block.fields, ROW_SYSTEM_KEYS)
            elif declared.type is FieldType.RELATIONSHIP:
                if not declared.targets:
                    raise SchemaError(
                        f"relationship {declared.name!r} has no relation_to", slug
                    )
                for target in declared.targets:
                    if target not in self._collections:
                        raise SchemaError(
                            f"relationship {declared.name!r} targets unknown "
                            f"collection {target!r}",
                            slug,
                        )
