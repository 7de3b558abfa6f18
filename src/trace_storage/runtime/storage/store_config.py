from pydantic import BaseModel, Field


class ElasticsearchStorageConfig(BaseModel):
    """Elasticsearch span storage configuration"""
    hosts: list[str] = ["http://localhost:9200"]
    username: str | None = None
    password: str | None = None
    index: str = "zipkin"
    date_separator: str = Field(default="-", min_length=1, max_length=1)
    flush_on_writes: bool = False
    include_type_name: bool = False
    search_enabled: bool = True
    autocomplete_keys: list[str] = []
    autocomplete_ttl: int = Field(default=3_600_000, gt=0, description="Milliseconds an autocomplete value is suppressed after it is written")
    autocomplete_cardinality: int = Field(default=5 * 4000, gt=0, description="Maximum autocomplete values remembered for suppression")
