from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from kbquery.config import ENV_VARS, Settings
from kbquery.schema import build_index


class FakeResults(object):
    def __init__(self, documents, count=None):
        self._documents = documents
        self._count = len(documents) if count is None else count

    def __iter__(self):
        return iter(self._documents)

    def get_count(self):
        return self._count


class FakeService(object):
    """Stands in for kbquery.connector.SearchService."""

    def __init__(self, index_names=(), indexer_names=()):
        self.index_client = MagicMock()
        self.index_client.list_index_names.return_value = list(index_names)
        self.indexer_client = MagicMock()
        self.indexer_client.get_indexer_names.return_value = list(indexer_names)
        self.indexer_client.get_indexer_status.return_value = SimpleNamespace(
            status="running", last_result=SimpleNamespace(status="inProgress")
        )
        self.searcher = MagicMock()
        self.searcher.search.return_value = FakeResults([])
        self.searched_indexes = []

    def search_client(self, index_name):
        self.searched_indexes.append(index_name)
        return self.searcher


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings():
    return Settings(
        search_service_name="margies",
        search_admin_key="admin-key",
        blob_storage_account_name="margiesstorage",
        blob_connection_string=(
            "DefaultEndpointsProtocol=https;AccountName=margiesstorage;AccountKey=a2V5"
        ),
        container_name="reviews",
        cognitive_services_key="cog-key",
        hello_world_skill_url="https://skills.example.net/api/hello-world",
        hello_world_skill_key="hello-key",
        top_words_skill_url="https://skills.example.net/api/tokenizer",
        indexer_wait_timeout=0,
        indexer_poll_interval=0.01,
    )


@pytest.fixture
def service(settings):
    fake = FakeService()
    fake.index_client.get_index.return_value = build_index(settings.index_name)
    return fake


@pytest.fixture
def existing_service(settings):
    return FakeService(index_names=[settings.index_name])
