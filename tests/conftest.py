"""
Shared test configuration and fixtures.

Provides the collection schema used across the suite and backend fixtures.
The ``backend`` fixture is parametrized so that service-level tests run
against every storage backend:
1. In-memory
2. SQLite (in-memory database)
3. Local JSON files (temporary directory)
"""

import logging

import pytest

from localized_document_storage.backends import (
    LocalFileBackend,
    LocalFileConfig,
    MemoryBackend,
    SQLiteBackend,
    SQLiteConfig,
)
from localized_document_storage.config import LocalizationConfig
from localized_document_storage.locales import LocaleRegistry
from localized_document_storage.schema import (
    Block,
    CollectionConfig,
    Field,
    FieldType,
    GlobalConfig,
    Schema,
)
from localized_document_storage.service import DocumentService

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
SPANISH_LOCALE = "es"
LOCALES = ["en", "es"]

LOCALIZED_POSTS = "localized-posts"
WITH_LOCALIZED_RELATIONSHIP = "with-localized-relationship"
RELATIONSHIP_LOCALIZED = "relationship-localized"
ARRAY_COLLECTION = "array-fields"
NESTED_TO_ARRAY_AND_BLOCK = "nested-to-array-and-block"
WITH_REQUIRED_LOCALIZED_FIELDS = "localized-required"
DEFAULTS_COLLECTION = "with-defaults"
GLOBAL_ARRAY = "global-array"


def build_schema() -> Schema:
    """Collections mirroring a typical localized CMS setup."""
    localized_posts = CollectionConfig(
        slug=LOCALIZED_POSTS,
        fields=[
            Field("title", FieldType.TEXT, localized=True),
            Field("description", FieldType.TEXTAREA),
            Field("views", FieldType.NUMBER),
            Field("children", FieldType.RELATIONSHIP, relation_to=LOCALIZED_POSTS, has_many=True),
            Field("group", FieldType.GROUP, fields=[Field("children", FieldType.TEXT)]),
        ],
    )

    with_localized_relationship = CollectionConfig(
        slug=WITH_LOCALIZED_RELATIONSHIP,
        fields=[
            Field(
                "localizedRelationship",
                FieldType.RELATIONSHIP,
                relation_to=LOCALIZED_POSTS,
            ),
            Field(
                "localizedRelationHasManyField",
                FieldType.RELATIONSHIP,
                relation_to=LOCALIZED_POSTS,
                has_many=True,
            ),
            Field(
                "localizedRelationMultiRelationTo",
                FieldType.RELATIONSHIP,
                relation_to=[LOCALIZED_POSTS, DEFAULTS_COLLECTION],
            ),
            Field(
                "localizedRelationMultiRelationToHasMany",
                FieldType.RELATIONSHIP,
                relation_to=[LOCALIZED_POSTS, DEFAULTS_COLLECTION],
                has_many=True,
            ),
        ],
    )

    relationship_localized = CollectionConfig(
        slug=RELATIONSHIP_LOCALIZED,
        fields=[
            Field(
                "relationship",
                FieldType.RELATIONSHIP,
                relation_to=LOCALIZED_POSTS,
                localized=True,
            ),
            Field(
                "relationshipHasMany",
                FieldType.RELATIONSHIP,
                relation_to=LOCALIZED_POSTS,
                has_many=True,
                localized=True,
            ),
            Field(
                "arrayField",
                FieldType.ARRAY,
                localized=True,
                fields=[
                    Field("nestedRelation", FieldType.RELATIONSHIP, relation_to=LOCALIZED_POSTS),
                ],
            ),
        ],
    )

    array_collection = CollectionConfig(
        slug=ARRAY_COLLECTION,
        fields=[
            Field(
                "items",
                FieldType.ARRAY,
                localized=True,
                fields=[Field("text", FieldType.TEXT, required=True)],
            ),
        ],
    )

    nested_to_array_and_block = CollectionConfig(
        slug=NESTED_TO_ARRAY_AND_BLOCK,
        fields=[
            Field(
                "blocks",
                FieldType.BLOCKS,
                blocks=[
                    Block(
                        "block",
                        fields=[
                            Field(
                                "array",
                                FieldType.ARRAY,
                                fields=[
                                    Field("text", FieldType.TEXT, localized=True),
                                    Field("textNotLocalized", FieldType.TEXT),
                                ],
                            ),
                        ],
                    ),
                ],
            ),
        ],
    )

    with_required_localized_fields = CollectionConfig(
        slug=WITH_REQUIRED_LOCALIZED_FIELDS,
        fields=[
            Field("title", FieldType.TEXT, localized=True, required=True),
            Field(
                "layout",
                FieldType.BLOCKS,
                localized=True,
                required=True,
                blocks=[
                    Block("text", fields=[Field("text", FieldType.TEXT)]),
                    Block("number", fields=[Field("number", FieldType.NUMBER)]),
                ],
            ),
        ],
    )

    defaults_collection = CollectionConfig(
        slug=DEFAULTS_COLLECTION,
        timestamps=False,
        fields=[
            Field("name", FieldType.TEXT, localized=True),
            Field(
                "status",
                FieldType.SELECT,
                options=["draft", "published"],
                default_value="draft",
            ),
            Field("featured", FieldType.CHECKBOX, default_value=False),
        ],
    )

    global_array = GlobalConfig(
        slug=GLOBAL_ARRAY,
        fields=[
            Field("array", FieldType.ARRAY, fields=[Field("text", FieldType.TEXT, localized=True)]),
        ],
    )

    return Schema(
        [
            localized_posts,
            with_localized_relationship,
            relationship_localized,
            array_collection,
            nested_to_array_and_block,
            with_required_localized_fields,
            defaults_collection,
        ],
        [global_array],
    )


@pytest.fixture
def schema() -> Schema:
    return build_schema()


@pytest.fixture
def registry() -> LocaleRegistry:
    return LocaleRegistry(locales=("en", "es"), default_locale="en")


@pytest.fixture
def localization_config() -> LocalizationConfig:
    return LocalizationConfig(locales=list(LOCALES), default_locale=DEFAULT_LOCALE)


@pytest.fixture(params=["memory", "sqlite", "local"])
async def backend(request, tmp_path):
    """Initialized storage backend, one per implementation."""
    if request.param == "memory":
        storage = await MemoryBackend.create()
    elif request.param == "sqlite":
        storage = await SQLiteBackend.create(SQLiteConfig(db_path=":memory:"))
    else:
        storage = await LocalFileBackend.create(LocalFileConfig(base_path=tmp_path / "documents"))
    yield storage
    await storage.close()


@pytest.fixture
async def service(backend, schema, localization_config) -> DocumentService:
    """Document service over each backend."""
    return DocumentService(backend, schema, localization_config)


async def create_localized_post(
    service: DocumentService, title_en: str, title_es: str, **extra
) -> dict:
    """Create a post in English, then add the Spanish title."""
    post = await service.create(LOCALIZED_POSTS, {"title": title_en, **extra})
    await service.update(LOCALIZED_POSTS, post["id"], {"title": title_es}, locale=SPANISH_LOCALE)
    return post
