import json
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from kbquery.errors import ConfigError


class Settings(BaseModel):
    """Run configuration, read once at start and passed to every step.

    Field aliases follow the ``appsettings.json`` spelling so an existing
    settings file can be loaded as is. Instances are frozen.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    search_service_name: str = Field(alias="SearchServiceName")
    search_admin_key: Optional[str] = Field(None, alias="SearchServiceAdminApiKey")
    blob_storage_account_name: str = Field(alias="BlobStorageAccountName")
    blob_connection_string: str = Field(alias="BlobStorageConnectionString")
    container_name: str = Field("reviews", alias="BlobContainerName")
    cognitive_services_key: str = Field(alias="CognitiveServicesKey")
    hello_world_skill_url: str = Field(alias="HelloWorldSkillUrl")
    hello_world_skill_key: Optional[str] = Field(None, alias="HelloWorldSkillKey")
    top_words_skill_url: str = Field(alias="TopWordsSkillUrl")
    top_words_skill_key: Optional[str] = Field(None, alias="TopWordsSkillKey")

    index_name: str = Field("reviewsindex", alias="IndexName")
    skillset_name: str = Field("margiesskillset", alias="SkillsetName")
    indexer_name: str = Field("hotelreviews-blob-indexer", alias="IndexerName")
    data_source_name: Optional[str] = Field(None, alias="DataSourceName")
    synonym_map_name: str = Field("desc-synonymmap", alias="SynonymMapName")

    indexer_wait_timeout: float = Field(60.0, alias="IndexerWaitTimeout", ge=0)
    indexer_poll_interval: float = Field(2.0, alias="IndexerPollInterval", gt=0)

    @model_validator(mode="before")
    @classmethod
    def _default_data_source_name(cls, data):
        if not isinstance(data, dict):
            return data
        if data.get("data_source_name") or data.get("DataSourceName"):
            return data
        account = data.get("blob_storage_account_name") or data.get(
            "BlobStorageAccountName"
        )
        if not account:
            return data
        data = {k: v for k, v in data.items() if k != "DataSourceName"}
        data["data_source_name"] = account
        return data

    @property
    def endpoint(self) -> str:
        return f"https://{self.search_service_name}.search.windows.net/"


# Environment variable for each settings field
ENV_VARS = {
    "search_service_name": "SEARCH_SERVICE",
    "search_admin_key": "SEARCH_KEY",
    "blob_storage_account_name": "AZURE_STORAGE_ACCOUNT",
    "container_name": "AZURE_STORAGE_CONTAINER",
    "blob_connection_string": "AZURE_STORAGE_CONNECTION_STRING",
    "cognitive_services_key": "COGNITIVE_SERVICES_KEY",
    "hello_world_skill_url": "HELLO_WORLD_SKILL_URL",
    "hello_world_skill_key": "HELLO_WORLD_SKILL_KEY",
    "top_words_skill_url": "TOP_WORDS_SKILL_URL",
    "top_words_skill_key": "TOP_WORDS_SKILL_KEY",
    "index_name": "SEARCH_INDEX",
}


def _field_names(data: dict) -> dict:
    aliases = {f.alias: name for name, f in Settings.model_fields.items() if f.alias}
    return {aliases.get(k, k): v for k, v in data.items()}


def read_settings_file(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Settings file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    return _field_names(data)


def load_settings(
    path: Optional[str] = None, overrides: Optional[dict] = None
) -> Settings:
    """Build settings from a JSON file, then the environment, then overrides.

    Later layers win. ``None`` values in ``overrides`` are ignored so parsed
    command-line arguments can be passed through unfiltered.
    """
    values = read_settings_file(path) if path else {}
    for field, var in ENV_VARS.items():
        value = os.getenv(var)
        if value:
            values[field] = value
    for field, value in _field_names(overrides or {}).items():
        if value is not None:
            values[field] = value

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])} ({err['msg']})"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid settings: {problems}") from e
