import logging
from typing import NamedTuple

from elasticsearch import AsyncElasticsearch

from trace_storage.config import Settings

from .delay_limiter import DelayLimiter
from .index_name_formatter import SPAN, IndexNameFormatter
from .span_consumer import AutocompleteContext, ElasticsearchSpanConsumer
from .store_config import ElasticsearchStorageConfig

logger = logging.getLogger(__name__)


class CheckResult(NamedTuple):
    ok: bool
    error: Exception | None = None


class ElasticsearchStorage:
    """
    Entry point for writing spans to Elasticsearch.

    One storage holds one client and one autocomplete limiter, shared by every
    batch written through span_consumer().
    """

    def __init__(self, config: ElasticsearchStorageConfig, es_client: AsyncElasticsearch | None = None):
        self.config = config
        self._owns_client = es_client is None
        if es_client is None:
            basic_auth = (config.username, config.password) if config.username else None
            es_client = AsyncElasticsearch(hosts=config.hosts, basic_auth=basic_auth)
        self.es_client = es_client
        self.index_name_formatter = IndexNameFormatter(config.index, config.date_separator)
        self._span_consumer: ElasticsearchSpanConsumer | None = None

    @classmethod
    def from_settings(cls, settings: Settings, es_client: AsyncElasticsearch | None = None) -> "ElasticsearchStorage":
        return cls(settings.storage_config(), es_client=es_client)

    def span_consumer(self) -> ElasticsearchSpanConsumer:
        if self._span_consumer is None:
            delay_limiter: DelayLimiter[AutocompleteContext] = DelayLimiter(
                ttl_millis=self.config.autocomplete_ttl,
                cardinality=self.config.autocomplete_cardinality,
            )
            self._span_consumer = ElasticsearchSpanConsumer(
                es_client=self.es_client,
                index_name_formatter=self.index_name_formatter,
                delay_limiter=delay_limiter,
                search_enabled=self.config.search_enabled,
                autocomplete_keys=self.config.autocomplete_keys,
                flush_on_writes=self.config.flush_on_writes,
                include_type_name=self.config.include_type_name,
            )
        return self._span_consumer

    async def check(self) -> CheckResult:
        """Reports whether the cluster is reachable and the span indexes are not red"""
        try:
            response = await self.es_client.cluster.health(index=self.index_name_formatter.format_type(SPAN))
        except Exception as e:
            logger.warning("Elasticsearch health check failed: %s", e)
            return CheckResult(ok=False, error=e)
        if response["status"] == "red":
            return CheckResult(ok=False, error=RuntimeError(f"Health status is RED for {response['cluster_name']}"))
        return CheckResult(ok=True)

    async def close(self) -> None:
        if self._owns_client:
            await self.es_client.close()

    async def __aenter__(self) -> "ElasticsearchStorage":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
