import datetime
import logging
from types import SimpleNamespace

import pytest
from azure.core.exceptions import HttpResponseError
from azure.search.documents.indexes.models import SearchIndexer

from kbquery.errors import ConflictError, RateLimited
from kbquery.indexer import (
    FIELD_MAPPINGS,
    OUTPUT_FIELD_MAPPINGS,
    build_indexer,
    provision,
    upsert_and_run_indexer,
    upsert_data_source,
    upsert_skillset,
    wait_for_indexer,
)


def http_error(message, status_code):
    error = HttpResponseError(message)
    error.status_code = status_code
    return error


def make_indexer():
    return build_indexer(
        "hotelreviews-blob-indexer", "margiesstorage", "reviewsindex", "margiesskillset"
    )


def mapped(mappings):
    return [(m.source_field_name, m.target_field_name) for m in mappings]


def called(client):
    return [c[0] for c in client.mock_calls]


def test_indexer_definition():
    indexer = make_indexer()

    assert mapped(indexer.field_mappings) == [
        (source, target) for source, target, _ in FIELD_MAPPINGS
    ]
    assert indexer.field_mappings[0].mapping_function.name == "base64Encode"
    assert all(m.mapping_function is None for m in indexer.field_mappings[1:])
    assert mapped(indexer.output_field_mappings) == list(OUTPUT_FIELD_MAPPINGS)
    assert indexer.parameters.max_failed_items == -1
    assert indexer.parameters.max_failed_items_per_batch == -1
    configuration = indexer.parameters.configuration
    assert configuration.image_action == "generateNormalizedImages"
    assert indexer.schedule.interval == datetime.timedelta(days=1)


def test_mapping_lists_are_not_shared():
    first, second = make_indexer(), make_indexer()
    first.field_mappings.clear()
    assert len(second.field_mappings) == len(FIELD_MAPPINGS)


def test_upsert_twice_sends_the_same_definition(service):
    service.indexer_client.get_indexer_names.side_effect = [
        [],
        ["hotelreviews-blob-indexer"],
    ]

    upsert_and_run_indexer(service, make_indexer(), out=lambda *_: None)
    upsert_and_run_indexer(service, make_indexer(), out=lambda *_: None)

    create_calls = service.indexer_client.create_or_update_indexer.call_args_list
    sent = [c[0][0] for c in create_calls]
    assert len(sent) == 2
    assert sent[0].as_dict() == sent[1].as_dict()


def test_existing_indexer_is_deleted_then_recreated_with_full_mappings(service):
    stale = SearchIndexer(
        name="hotelreviews-blob-indexer",
        data_source_name="margiesstorage",
        target_index_name="reviewsindex",
        field_mappings=[],
    )
    service.indexer_client.get_indexer_names.return_value = [stale.name]
    service.indexer_client.get_indexer.return_value = stale
    lines = []

    upsert_and_run_indexer(service, make_indexer(), out=lines.append)

    calls = called(service.indexer_client)
    assert calls.index("delete_indexer") < calls.index("create_or_update_indexer")
    assert calls.index("create_or_update_indexer") < calls.index("run_indexer")
    sent = service.indexer_client.create_or_update_indexer.call_args[0][0]
    assert len(sent.field_mappings) == len(FIELD_MAPPINGS)
    assert len(sent.output_field_mappings) == len(OUTPUT_FIELD_MAPPINGS)
    assert lines == ["Running Blob Storage indexer...\n"]


def test_throttled_run_raises_rate_limited_without_retry(service):
    service.indexer_client.run_indexer.side_effect = http_error(
        "Too many requests", 429
    )

    with pytest.raises(RateLimited):
        upsert_and_run_indexer(service, make_indexer(), out=lambda *_: None)

    service.indexer_client.run_indexer.assert_called_once()


def test_other_run_failures_propagate(service):
    service.indexer_client.run_indexer.side_effect = http_error("Internal error", 500)

    with pytest.raises(HttpResponseError):
        upsert_and_run_indexer(service, make_indexer(), out=lambda *_: None)


def test_skillset_rejection_is_fatal(service, caplog):
    service.indexer_client.create_or_update_skillset.side_effect = HttpResponseError(
        "bad skill"
    )

    with pytest.raises(ConflictError):
        upsert_skillset(service, "margiesskillset", [], "cog-key")
    assert "Failed to create the skillset" in caplog.text


def test_skillset_carries_cognitive_services_key(service):
    upsert_skillset(service, "margiesskillset", [], "cog-key")

    skillset = service.indexer_client.create_or_update_skillset.call_args[0][0]
    assert skillset.name == "margiesskillset"
    assert skillset.cognitive_services_account.key == "cog-key"


def test_data_source_points_at_container(service):
    upsert_data_source(service, "margiesstorage", "conn", "reviews")

    client = service.indexer_client
    source = client.create_or_update_data_source_connection.call_args[0][0]
    assert source.type == "azureblob"
    assert source.connection_string == "conn"
    assert source.container.name == "reviews"


class FakeClock(object):
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def status(last):
    last_result = SimpleNamespace(status=last) if last else None
    return SimpleNamespace(status="running", last_result=last_result)


def test_wait_polls_until_run_starts(service):
    clock = FakeClock()
    service.indexer_client.get_indexer_status.side_effect = [
        status(None),
        status(None),
        status("inProgress"),
    ]

    result = wait_for_indexer(
        service, "idx", timeout=10, poll_interval=2, clock=clock, sleep=clock.sleep
    )

    assert result == "inProgress"
    assert clock.sleeps == [2, 2]


def test_wait_gives_up_after_timeout(service, caplog):
    clock = FakeClock()
    service.indexer_client.get_indexer_status.return_value = status(None)

    result = wait_for_indexer(
        service, "idx", timeout=5, poll_interval=2, clock=clock, sleep=clock.sleep
    )

    assert result is None
    assert clock.now >= 5
    assert "has not started" in caplog.text


def test_provision_runs_every_step_in_order(service, settings):
    lines = []

    provision(service, settings, out=lines.append)

    index_calls = called(service.index_client)
    assert index_calls.index("create_index") < index_calls.index(
        "create_or_update_index"
    )
    indexer_calls = called(service.indexer_client)
    assert indexer_calls[:2] == [
        "create_or_update_skillset",
        "create_or_update_data_source_connection",
    ]
    assert indexer_calls.index("create_or_update_indexer") < indexer_calls.index(
        "run_indexer"
    )
    service.indexer_client.get_indexer_status.assert_called_with(settings.indexer_name)

    indexer = service.indexer_client.create_or_update_indexer.call_args[0][0]
    assert indexer.skillset_name == settings.skillset_name
    assert indexer.data_source_name == "margiesstorage"
    assert lines == [
        "Creating index...\n",
        "Creating the skills....",
        "Indexing and merging review data from blob storage...\n",
        "Creating Blob Storage indexer...\n",
        "Running Blob Storage indexer...\n",
    ]


def test_provision_reports_throttled_run_and_skips_waiting(service, settings, caplog):
    service.indexer_client.run_indexer.side_effect = http_error(
        "Too many requests", 429
    )

    with caplog.at_level(logging.WARNING):
        provision(service, settings, out=lambda *_: None)

    service.indexer_client.run_indexer.assert_called_once()
    service.indexer_client.get_indexer_status.assert_not_called()
    assert "Failed to run indexer" in caplog.text


def test_provision_stops_when_skillset_rejected(service, settings):
    service.indexer_client.create_or_update_skillset.side_effect = HttpResponseError(
        "quota"
    )

    with pytest.raises(ConflictError):
        provision(service, settings, out=lambda *_: None)
    service.indexer_client.create_or_update_indexer.assert_not_called()
