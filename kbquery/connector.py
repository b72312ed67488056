import logging

from azure.core.credentials import AzureKeyCredential
from azure.identity import DefaultAzureCredential
from azure.search.documents import SearchClient
from azure.search.documents.indexes import SearchIndexClient, SearchIndexerClient

from kbquery.config import Settings

logger = logging.getLogger(__name__)


def search_credential(settings: Settings):
    # Use the current user identity unless an admin key is explicitly set
    if settings.search_admin_key:
        return AzureKeyCredential(settings.search_admin_key)
    return DefaultAzureCredential()


class SearchService(object):
    """Handle on one search service, shared by every provisioning step."""

    def __init__(self, endpoint: str, credential):
        self.endpoint = endpoint
        self.credential = credential
        self.index_client = SearchIndexClient(endpoint=endpoint, credential=credential)
        self.indexer_client = SearchIndexerClient(
            endpoint=endpoint, credential=credential
        )

    def search_client(self, index_name: str) -> SearchClient:
        return SearchClient(
            endpoint=self.endpoint, index_name=index_name, credential=self.credential
        )


def connect(settings: Settings) -> SearchService:
    logger.debug("Connecting to search service %s", settings.endpoint)
    return SearchService(settings.endpoint, search_credential(settings))
