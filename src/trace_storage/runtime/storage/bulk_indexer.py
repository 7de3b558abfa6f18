import json
import logging
from typing import Any

from elasticsearch import AsyncElasticsearch

from .store_interface import BulkIndexException, BulkRejectedException

logger = logging.getLogger(__name__)


class BulkIndexer:
    """
    Buffers pre-encoded documents into a single Elasticsearch _bulk request.

    Documents are written as-is, so callers own their encoding. A BulkIndexer
    is submitted at most once; the whole request succeeds or fails together.

    elasticsearch.helpers.async_bulk is not used as it splits actions into
    chunks sent as separate requests, so a batch could be partly stored.
    Item errors are read from the single response by check_bulk_response.
    """

    def __init__(
        self,
        es_client: AsyncElasticsearch,
        tag: str,
        flush_on_writes: bool = False,
        include_type_name: bool = False,
    ):
        self.es_client = es_client
        self.tag = tag
        self.flush_on_writes = flush_on_writes
        self.include_type_name = include_type_name
        self._body = bytearray()
        self._count = 0
        self._submitted = False

    def add(self, index: str, doc_type: str, document: bytes, id: str | None = None) -> None:
        """Appends an index action. Without an id, Elasticsearch assigns one."""
        action: dict[str, Any] = {"_index": index}
        # mapping types were removed in Elasticsearch 7
        if self.include_type_name:
            action["_type"] = doc_type
        if id is not None:
            action["_id"] = id
        self._body += json.dumps({"index": action}, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
        self._body += b"\n"
        self._body += document
        self._body += b"\n"
        self._count += 1

    def __len__(self) -> int:
        return self._count

    async def submit(self) -> None:
        if self._submitted:
            raise RuntimeError(f"{self.tag} was already submitted")
        self._submitted = True

        kwargs: dict[str, Any] = {}
        if self.flush_on_writes:
            kwargs["refresh"] = "wait_for"

        response = await self.es_client.bulk(operations=bytes(self._body), **kwargs)
        logger.debug("%s: submitted %d documents", self.tag, self._count)
        check_bulk_response(self.tag, response.body if hasattr(response, "body") else response)


def check_bulk_response(tag: str, body: dict[str, Any]) -> None:
    """Raises when any action in a bulk response failed"""
    if not body.get("errors"):
        return

    reason = None
    rejected = False
    for item in body.get("items", []):
        for result in item.values():
            if result.get("status") == 429:
                rejected = True
            error = result.get("error")
            if error and reason is None:
                reason = error.get("reason", str(error)) if isinstance(error, dict) else str(error)

    message = f"{tag} failed: {reason or 'Unknown error'}"
    if rejected:
        raise BulkRejectedException(message)
    raise BulkIndexException(message)
