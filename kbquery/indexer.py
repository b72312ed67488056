import datetime
import logging
import time
from typing import List, Optional

from azure.core.exceptions import HttpResponseError
from azure.search.documents.indexes.models import (
    CognitiveServicesAccountKey,
    FieldMapping,
    FieldMappingFunction,
    IndexingParameters,
    IndexingParametersConfiguration,
    IndexingSchedule,
    SearchIndexer,
    SearchIndexerDataContainer,
    SearchIndexerDataSourceConnection,
    SearchIndexerSkillset,
)

from kbquery.config import Settings
from kbquery.errors import ConflictError, RateLimited, rejected_as_conflict
from kbquery.schema import attach_synonym_map, create_synonym_map, define_schema
from kbquery.skills import create_skills

logger = logging.getLogger(__name__)

# (source field, target field, mapping function)
FIELD_MAPPINGS = (
    ("metadata_storage_path", "id", "base64Encode"),
    ("metadata_storage_path", "url", None),
    ("metadata_storage_name", "file_name", None),
    ("content", "content", None),
    ("metadata_storage_size", "size", None),
    ("metadata_storage_last_modified", "last_modified", None),
)

OUTPUT_FIELD_MAPPINGS = (
    ("/document/content/persons/*", "persons"),
    ("/document/sentiment", "sentiment"),
    ("/document/merged_text", "merged_text"),
    ("/document/greeting", "greeting"),
    ("/document/top_10_words", "top_10_words"),
)


def upsert_skillset(service, name: str, skills: List, cognitive_services_key: str):
    skillset = SearchIndexerSkillset(
        name=name,
        description="Margie Travel skillset",
        skills=skills,
        cognitive_services_account=CognitiveServicesAccountKey(
            key=cognitive_services_key
        ),
    )
    # create_or_update replaces any skillset of the same name
    try:
        with rejected_as_conflict(f"Creating skillset {name}"):
            result = service.indexer_client.create_or_update_skillset(skillset)
    except ConflictError as e:
        logger.error("Failed to create the skillset: %s", e)
        raise
    logger.info("Skillset %s has %d skills", name, len(skills))
    return result


def upsert_data_source(service, name: str, connection_string: str, container: str):
    data_source = SearchIndexerDataSourceConnection(
        name=name,
        type="azureblob",
        connection_string=connection_string,
        container=SearchIndexerDataContainer(name=container),
    )
    return service.indexer_client.create_or_update_data_source_connection(data_source)


def field_mappings() -> List[FieldMapping]:
    return [
        FieldMapping(
            source_field_name=source,
            target_field_name=target,
            mapping_function=FieldMappingFunction(name=function) if function else None,
        )
        for source, target, function in FIELD_MAPPINGS
    ]


def output_field_mappings() -> List[FieldMapping]:
    return [
        FieldMapping(source_field_name=source, target_field_name=target)
        for source, target in OUTPUT_FIELD_MAPPINGS
    ]


def build_indexer(
    name: str, data_source: str, index: str, skillset: str
) -> SearchIndexer:
    configuration = IndexingParametersConfiguration(
        data_to_extract="contentAndMetadata",
        image_action="generateNormalizedImages",
        # queryTimeout only applies to SQL sources and is rejected for blobs
        query_timeout=None,
    )
    return SearchIndexer(
        name=name,
        data_source_name=data_source,
        target_index_name=index,
        skillset_name=skillset,
        field_mappings=field_mappings(),
        output_field_mappings=output_field_mappings(),
        parameters=IndexingParameters(
            max_failed_items=-1,
            max_failed_items_per_batch=-1,
            configuration=configuration,
        ),
        schedule=IndexingSchedule(interval=datetime.timedelta(days=1)),
    )


def upsert_and_run_indexer(service, indexer: SearchIndexer, out=print) -> None:
    """Replace the indexer definition and start a run.

    An existing indexer is deleted rather than reset, so no state or mapping
    from an earlier definition survives. A throttled run request raises
    RateLimited and is not retried.
    """
    client = service.indexer_client
    if indexer.name in client.get_indexer_names():
        logger.info("Deleting existing indexer %s", indexer.name)
        client.delete_indexer(indexer.name)
    client.create_or_update_indexer(indexer)

    out("Running Blob Storage indexer...\n")
    try:
        client.run_indexer(indexer.name)
    except HttpResponseError as e:
        if e.status_code != 429:
            raise
        raise RateLimited(f"Failed to run indexer {indexer.name}: {e.message}") from e


def wait_for_indexer(
    service,
    name: str,
    timeout: float,
    poll_interval: float,
    clock=time.monotonic,
    sleep=time.sleep,
) -> Optional[str]:
    """Poll until the indexer reports an execution, or give up after ``timeout``."""
    deadline = clock() + timeout
    while True:
        status = service.indexer_client.get_indexer_status(name)
        last = status.last_result
        if last is not None and last.status:
            logger.info("Indexer %s: %s", name, last.status)
            return last.status
        if clock() >= deadline:
            logger.warning(
                "Indexer %s has not started after %.0f seconds", name, timeout
            )
            return None
        sleep(poll_interval)


def provision(service, settings: Settings, out=print) -> None:
    out("Creating index...\n")
    define_schema(service, settings.index_name)
    create_synonym_map(service, settings.synonym_map_name)
    attach_synonym_map(service, settings.index_name, settings.synonym_map_name)

    out("Creating the skills....")
    upsert_skillset(
        service,
        settings.skillset_name,
        create_skills(settings),
        settings.cognitive_services_key,
    )

    out("Indexing and merging review data from blob storage...\n")
    upsert_data_source(
        service,
        settings.data_source_name,
        settings.blob_connection_string,
        settings.container_name,
    )

    out("Creating Blob Storage indexer...\n")
    indexer = build_indexer(
        settings.indexer_name,
        settings.data_source_name,
        settings.index_name,
        settings.skillset_name,
    )
    try:
        upsert_and_run_indexer(service, indexer, out=out)
    except RateLimited as e:
        # The run stays unknown; provisioning still finishes
        logger.warning("%s", e)
        return
    wait_for_indexer(
        service,
        settings.indexer_name,
        settings.indexer_wait_timeout,
        settings.indexer_poll_interval,
    )
