import json
import logging
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from typing import NamedTuple

from elasticsearch import AsyncElasticsearch

from trace_storage.core.codec.span_encoder import encode_span, json_escape
from trace_storage.core.data.span_data import Span

from .bulk_indexer import BulkIndexer
from .delay_limiter import DelayLimiter, current_time_millis
from .index_name_formatter import AUTOCOMPLETE, SPAN, IndexNameFormatter
from .store_interface import SpanConsumer

logger = logging.getLogger(__name__)

INDEX_CHARS_LIMIT = 256
EMPTY_JSON = b"{}"


class IndexTimestamps(NamedTuple):
    index_timestamp: int
    """Epoch millis choosing the daily index"""
    timestamp_millis: int
    """Epoch millis stored as timestamp_millis, or 0 when the span has no timestamp"""


class AutocompleteContext(NamedTuple):
    """Identifies one autocomplete value written to one daily index"""
    index_timestamp: int
    autocomplete_id: str


class IndexedDocument(NamedTuple):
    index: str
    doc_type: str
    document: bytes
    id: str | None = None


class PrefixResult(NamedTuple):
    ok: bool
    prefix: bytes = EMPTY_JSON


def index_chars(value: str) -> int:
    """Length in UTF-16 code units, so characters outside the BMP count twice"""
    return len(value.encode("utf-16-le", "surrogatepass")) // 2


def resolve_index_timestamps(span: Span, clock: Callable[[], int] = current_time_millis) -> IndexTimestamps:
    if span.timestamp != 0:
        timestamp_millis = span.timestamp // 1000
        return IndexTimestamps(timestamp_millis, timestamp_millis)
    # When choosing the index bucket, any annotation is better than using current time.
    index_timestamp = span.annotations[0].timestamp // 1000 if span.annotations else 0
    return IndexTimestamps(index_timestamp or clock(), 0)


def search_prefix(span: Span, timestamp_millis: int) -> PrefixResult:
    """
    Builds the fields added to a span document to make it searchable.

    "timestamp_millis" lets tools like Kibana range query spans. Tags are
    stored as a dictionary whose keys have an inconsistent number of dots
    (ex "error" and "error.message"), so they cannot be indexed naturally.
    Instead "_q" lists valid queries: the tag error -> 500 results in
    "_q":["error","error=500"], searchable as _q:error=500.
    """
    fields: dict[str, object] = {}
    if timestamp_millis != 0:
        fields["timestamp_millis"] = timestamp_millis
    if span.tags or span.annotations:
        query = []
        for annotation in span.annotations:
            if index_chars(annotation.value) > INDEX_CHARS_LIMIT:
                continue
            query.append(annotation.value)
        for key, value in span.tags.items():
            if index_chars(key) + index_chars(value) + 1 > INDEX_CHARS_LIMIT:
                continue
            query.append(key)  # search is possible by key alone
            query.append(f"{key}={value}")
        fields["_q"] = query
    try:
        prefix = json.dumps(fields, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
    except (TypeError, ValueError):
        logger.debug("Error indexing query for span: %s", span.id, exc_info=True)
        return PrefixResult(ok=False)
    return PrefixResult(ok=True, prefix=prefix)


def merge_json(prefix: bytes, suffix: bytes) -> bytes:
    """Joins two JSON objects by replacing the prefix's '}' and the suffix's '{' with a comma."""
    return prefix[:-1] + b"," + suffix[1:]


def prefix_with_timestamp_millis_and_query(
    span: Span,
    timestamp_millis: int,
    encoder: Callable[[Span], bytes] = encode_span,
) -> bytes:
    """
    Adds search fields to the canonical encoding of a span without re-encoding it.

    {"traceId":"... becomes {"timestamp_millis":12345,"_q":[...],"traceId":"...
    """
    result = search_prefix(span, timestamp_millis)
    document = encoder(span)
    if not result.ok or result.prefix == EMPTY_JSON:
        return document
    return merge_json(result.prefix, document)


def autocomplete_document(key: str, value: str) -> bytes:
    escaped_key = json_escape(key).encode('utf-8')
    escaped_value = json_escape(value).encode('utf-8')
    # {"tagKey":"","tagValue":""} is 27 bytes
    return b"".join((
        b'{"tagKey":"', escaped_key, b'","tagValue":"', escaped_value, b'"}',
    ))


@dataclass(frozen=True)
class SpanBatch:
    """Documents for one accept call and the autocomplete values to forget if it fails"""
    documents: tuple[IndexedDocument, ...]
    autocomplete_contexts: tuple[AutocompleteContext, ...]


class SpanBatchBuilder:
    """Accumulates the documents of one accept call. Not shared between calls."""

    def __init__(self, consumer: "ElasticsearchSpanConsumer"):
        self.consumer = consumer
        self._documents: list[IndexedDocument] = []
        self._autocomplete_contexts: list[AutocompleteContext] = []

    def add_span(self, span: Span, timestamps: IndexTimestamps) -> "SpanBatchBuilder":
        index = self.consumer.index_name_formatter.format_type_and_timestamp(SPAN, timestamps.index_timestamp)
        if self.consumer.search_enabled:
            document = prefix_with_timestamp_millis_and_query(
                span, timestamps.timestamp_millis, self.consumer.encoder
            )
        else:
            document = self.consumer.encoder(span)
        # Elasticsearch chooses the id
        self._documents.append(IndexedDocument(index, SPAN, document))
        return self

    def add_autocomplete_values(self, span: Span, index_timestamp: int) -> "SpanBatchBuilder":
        consumer = self.consumer
        index = consumer.index_name_formatter.format_type_and_timestamp(AUTOCOMPLETE, index_timestamp)
        for key, value in span.tags.items():
            if index_chars(key) + index_chars(value) + 1 > INDEX_CHARS_LIMIT:
                continue
            if key not in consumer.autocomplete_keys:
                continue

            # Id is used to dedupe server side as necessary. Same format as a _q value.
            id = f"{key}={value}"
            context = AutocompleteContext(index_timestamp, id)
            if not consumer.delay_limiter.should_invoke(context):
                continue
            self._autocomplete_contexts.append(context)
            self._documents.append(IndexedDocument(index, AUTOCOMPLETE, autocomplete_document(key, value), id))
        return self

    def build(self) -> SpanBatch:
        return SpanBatch(tuple(self._documents), tuple(self._autocomplete_contexts))


class ElasticsearchSpanConsumer(SpanConsumer):
    """
    Writes spans to daily Elasticsearch indexes, along with autocomplete
    values for whitelisted tag keys.
    """

    def __init__(
        self,
        es_client: AsyncElasticsearch,
        index_name_formatter: IndexNameFormatter,
        delay_limiter: DelayLimiter[AutocompleteContext],
        search_enabled: bool = True,
        autocomplete_keys: Collection[str] = (),
        flush_on_writes: bool = False,
        include_type_name: bool = False,
        encoder: Callable[[Span], bytes] = encode_span,
        clock: Callable[[], int] = current_time_millis,
    ):
        self.es_client = es_client
        self.index_name_formatter = index_name_formatter
        self.delay_limiter = delay_limiter
        self.search_enabled = search_enabled
        self.autocomplete_keys = frozenset(autocomplete_keys)
        self.flush_on_writes = flush_on_writes
        self.include_type_name = include_type_name
        self.encoder = encoder
        self.clock = clock

    async def accept(self, spans: Sequence[Span]) -> None:
        if not spans:
            return
        await self.submit(self.index_spans(spans))

    def index_spans(self, spans: Sequence[Span]) -> SpanBatch:
        builder = SpanBatchBuilder(self)
        for span in spans:
            timestamps = resolve_index_timestamps(span, self.clock)
            builder.add_span(span, timestamps)
            if self.search_enabled and span.tags:
                builder.add_autocomplete_values(span, timestamps.index_timestamp)
        return builder.build()

    async def submit(self, batch: SpanBatch) -> None:
        indexer = BulkIndexer(
            self.es_client,
            "index-span",
            flush_on_writes=self.flush_on_writes,
            include_type_name=self.include_type_name,
        )
        for document in batch.documents:
            indexer.add(document.index, document.doc_type, document.document, document.id)

        if not batch.autocomplete_contexts:
            await indexer.submit()
            return

        try:
            await indexer.submit()
        except Exception:
            # Nothing was stored, so allow these values to be written by a later call.
            logger.warning(
                "Bulk request of %d documents failed; invalidating %d autocomplete values",
                len(indexer), len(batch.autocomplete_contexts),
            )
            for context in batch.autocomplete_contexts:
                self.delay_limiter.invalidate(context)
            raise
