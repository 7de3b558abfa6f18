from abc import ABC, abstractmethod
from typing import Sequence

from trace_storage.core.data.span_data import Span


class StorageException(Exception):
    """Base exception class for storage operations"""
    pass


class BulkIndexException(StorageException):
    """Raised when Elasticsearch reports errors for a bulk request"""
    pass


class BulkRejectedException(BulkIndexException):
    """Raised when Elasticsearch rejects a bulk request for lack of capacity (HTTP 429)"""
    pass


"""
Abstract span consumer that can be implemented by different storage backends
"""
class SpanConsumer(ABC):

    @abstractmethod
    async def accept(self, spans: Sequence[Span]) -> None:
        """
        Store a batch of spans. Completes when the whole batch is stored and
        raises the storage error when it is not.
        """
        pass
