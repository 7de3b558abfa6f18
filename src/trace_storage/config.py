# config.py
from pydantic import Field
from pydantic_settings import BaseSettings

from dotenv import load_dotenv
load_dotenv()

from trace_storage.runtime.storage.store_config import ElasticsearchStorageConfig


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    # Elasticsearch settings
    ES_HOSTS: str = Field(default="http://localhost:9200", description="Comma-separated Elasticsearch urls")
    ES_USERNAME: str | None = None
    ES_PASSWORD: str | None = None
    ES_INDEX: str = "zipkin"
    ES_DATE_SEPARATOR: str = "-"
    ES_FLUSH_ON_WRITES: bool = False
    ES_INCLUDE_TYPE_NAME: bool = Field(default=False, description="Send _type in bulk actions, for clusters older than 7.x")

    # Search and autocomplete settings
    SEARCH_ENABLED: bool = True
    AUTOCOMPLETE_KEYS: str = Field(default="", description="Comma-separated tag keys to store autocomplete values for")
    AUTOCOMPLETE_TTL: int = Field(default=3_600_000, description="Milliseconds to suppress rewriting the same autocomplete value")
    AUTOCOMPLETE_CARDINALITY: int = 5 * 4000

    #Logging settings
    LOG_LEVEL: str = "INFO"

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
    }

    def storage_config(self) -> ElasticsearchStorageConfig:
        return ElasticsearchStorageConfig(
            hosts=_split(self.ES_HOSTS),
            username=self.ES_USERNAME,
            password=self.ES_PASSWORD,
            index=self.ES_INDEX,
            date_separator=self.ES_DATE_SEPARATOR,
            flush_on_writes=self.ES_FLUSH_ON_WRITES,
            include_type_name=self.ES_INCLUDE_TYPE_NAME,
            search_enabled=self.SEARCH_ENABLED,
            autocomplete_keys=_split(self.AUTOCOMPLETE_KEYS),
            autocomplete_ttl=self.AUTOCOMPLETE_TTL,
            autocomplete_cardinality=self.AUTOCOMPLETE_CARDINALITY,
        )


settings = Settings()
