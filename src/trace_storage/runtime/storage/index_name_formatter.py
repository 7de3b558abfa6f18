from datetime import UTC, datetime

SPAN = "span"
AUTOCOMPLETE = "autocomplete"


class IndexNameFormatter:
    """
    Names the daily indexes documents are written to, ex. "zipkin-span-2019-05-03".

    Days are calendar days in UTC.
    """

    def __init__(self, index: str = "zipkin", date_separator: str = "-"):
        if not index:
            raise ValueError("index must not be empty")
        self.index = index
        self.date_separator = date_separator
        self._date_format = f"%Y{date_separator}%m{date_separator}%d"

    def format_type(self, doc_type: str) -> str:
        """Wildcard pattern matching every daily index of a document type"""
        return f"{self.index}-{doc_type}-*"

    def format_type_and_timestamp(self, doc_type: str, timestamp_millis: int) -> str:
        day = datetime.fromtimestamp(timestamp_millis / 1000, tz=UTC)
        return f"{self.index}-{doc_type}-{day.strftime(self._date_format)}"
