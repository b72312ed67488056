"""Index schema for the hotel review documents.

The schema is declared as an ordered list of :class:`FieldSpec` records and
turned into SDK ``SearchField`` objects only when the index is created.
"""
import logging
from typing import List, NamedTuple, Optional

from azure.search.documents.indexes.models import (
    SearchField,
    SearchFieldDataType,
    SearchIndex,
    SynonymMap,
)

from kbquery.errors import rejected_as_conflict

logger = logging.getLogger(__name__)


class FieldSpec(NamedTuple):
    name: str
    type: str = SearchFieldDataType.String
    key: bool = False
    searchable: bool = False
    filterable: bool = False
    sortable: bool = False
    facetable: bool = False
    retrievable: bool = True
    analyzer_name: Optional[str] = None


STRING_COLLECTION = SearchFieldDataType.Collection(SearchFieldDataType.String)

TRAVEL_FIELDS = [
    FieldSpec("id", key=True, filterable=True),
    FieldSpec("url", searchable=True, filterable=True, sortable=True),
    FieldSpec("file_name", searchable=True, analyzer_name="en.lucene"),
    FieldSpec("content", searchable=True),
    FieldSpec(
        "size",
        SearchFieldDataType.Int64,
        filterable=True,
        sortable=True,
        facetable=True,
    ),
    FieldSpec(
        "last_modified",
        SearchFieldDataType.DateTimeOffset,
        filterable=True,
        sortable=True,
        facetable=True,
    ),
    # Populated by the skillset through the indexer's output field mappings
    FieldSpec("merged_text", searchable=True),
    FieldSpec("sentiment", filterable=True, facetable=True),
    FieldSpec(
        "persons",
        STRING_COLLECTION,
        searchable=True,
        filterable=True,
        facetable=True,
    ),
    FieldSpec("greeting", searchable=True),
    FieldSpec(
        "top_10_words",
        STRING_COLLECTION,
        searchable=True,
        filterable=True,
        facetable=True,
    ),
]

SYNONYM_FIELDS = ("merged_text", "top_10_words")

SYNONYMS = [
    "United States, America, United States of America",
    "UK, United Kingdom, Britain, Great Britain",
    "UAE, Emirates, United Arab Emirates",
]


def build_fields(specs: List[FieldSpec]) -> List[SearchField]:
    keys = [s.name for s in specs if s.key]
    if len(keys) != 1:
        raise ValueError(
            f"Schema must have exactly one key field, found {keys or 'none'}"
        )
    return [
        SearchField(
            name=s.name,
            type=s.type,
            key=s.key,
            hidden=not s.retrievable,
            searchable=s.searchable,
            filterable=s.filterable,
            sortable=s.sortable,
            facetable=s.facetable,
            analyzer_name=s.analyzer_name,
        )
        for s in specs
    ]


def build_index(name: str, specs: List[FieldSpec] = TRAVEL_FIELDS) -> SearchIndex:
    return SearchIndex(name=name, fields=build_fields(specs))


def index_exists(service, name: str) -> bool:
    return name in service.index_client.list_index_names()


def delete_index_if_exists(service, name: str) -> bool:
    if not index_exists(service, name):
        return False
    with rejected_as_conflict(f"Deleting index {name}"):
        service.index_client.delete_index(name)
    logger.info("Deleted index %s", name)
    return True


def define_schema(
    service, name: str, specs: List[FieldSpec] = TRAVEL_FIELDS
) -> SearchIndex:
    """Create the index from scratch.

    The service cannot migrate an existing schema in place, so any index of
    the same name is dropped first.
    """
    index = build_index(name, specs)
    delete_index_if_exists(service, name)
    with rejected_as_conflict(f"Creating index {name}"):
        result = service.index_client.create_index(index)
    logger.info("Created index %s with %d fields", name, len(index.fields))
    return result


def create_synonym_map(
    service, name: str, synonyms: List[str] = SYNONYMS
) -> SynonymMap:
    with rejected_as_conflict(f"Creating synonym map {name}"):
        return service.index_client.create_or_update_synonym_map(
            SynonymMap(name=name, synonyms=synonyms)
        )


def attach_synonym_map(service, index_name: str, map_name: str, fields=SYNONYM_FIELDS):
    index = service.index_client.get_index(index_name)
    for field in index.fields:
        if field.name in fields:
            field.synonym_map_names = [map_name]
    with rejected_as_conflict(f"Attaching synonym map {map_name} to {index_name}"):
        return service.index_client.create_or_update_index(index)
