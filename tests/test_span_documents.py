import json
import unittest
from unittest.mock import patch

from trace_storage.core.codec.span_encoder import encode_span
from trace_storage.core.data.span_data import Annotation, Span
from trace_storage.runtime.storage.delay_limiter import current_time_millis
from trace_storage.runtime.storage.span_consumer import (
    INDEX_CHARS_LIMIT,
    AutocompleteContext,
    autocomplete_document,
    index_chars,
    merge_json,
    prefix_with_timestamp_millis_and_query,
    resolve_index_timestamps,
    search_prefix,
)

TRACE_ID = "7180c278b62e8f6a216a2aea45d08fc9"


def span(**kwargs) -> Span:
    return Span(trace_id=TRACE_ID, id="5b4185666d50f68b", **kwargs)


class TestResolveIndexTimestamps(unittest.TestCase):

    def test_span_timestamp(self):
        """A span timestamp is both the bucket and the stored timestamp."""
        timestamps = resolve_index_timestamps(span(timestamp=1_600_000_000_123_456))
        self.assertEqual(timestamps.index_timestamp, 1_600_000_000_123)
        self.assertEqual(timestamps.timestamp_millis, 1_600_000_000_123)

    def test_first_annotation_when_no_timestamp(self):
        """Without a span timestamp, the first annotation picks the bucket but nothing is stored."""
        timestamps = resolve_index_timestamps(span(annotations=[
            Annotation(timestamp=1_500_000_000_999_000, value="ws"),
            Annotation(timestamp=1_400_000_000_000_000, value="wr"),
        ]))
        self.assertEqual(timestamps.index_timestamp, 1_500_000_000_999)
        self.assertEqual(timestamps.timestamp_millis, 0)

    def test_current_time_when_nothing_recorded(self):
        before = current_time_millis()
        timestamps = resolve_index_timestamps(span())
        after = current_time_millis()
        self.assertTrue(before <= timestamps.index_timestamp <= after)
        self.assertEqual(timestamps.timestamp_millis, 0)

    def test_injected_clock(self):
        timestamps = resolve_index_timestamps(span(), clock=lambda: 42)
        self.assertEqual(timestamps, (42, 0))

    def test_annotation_in_first_millisecond_uses_clock(self):
        """An annotation rounding down to epoch zero is no better than no annotation."""
        for annotation_timestamp in (0, 500, 999):
            timestamps = resolve_index_timestamps(
                span(annotations=[Annotation(timestamp=annotation_timestamp, value="cs")]),
                clock=lambda: 1_600_000_000_000,
            )
            self.assertEqual(timestamps, (1_600_000_000_000, 0))

        timestamps = resolve_index_timestamps(
            span(annotations=[Annotation(timestamp=1_000, value="cs")]),
            clock=lambda: 1_600_000_000_000,
        )
        self.assertEqual(timestamps, (1, 0))


class TestSearchPrefix(unittest.TestCase):

    def test_timestamp_and_query(self):
        result = search_prefix(span(
            annotations=[Annotation(timestamp=1, value="ws")],
            tags={"error": "500", "http.method": "GET"},
        ), 1_600_000_000_000)
        self.assertTrue(result.ok)
        self.assertEqual(
            result.prefix,
            b'{"timestamp_millis":1600000000000,"_q":["ws","error","error=500","http.method","http.method=GET"]}',
        )

    def test_empty_when_nothing_to_add(self):
        result = search_prefix(span(), 0)
        self.assertTrue(result.ok)
        self.assertEqual(result.prefix, b"{}")

    def test_oversized_values_excluded(self):
        limit_value = "v" * (INDEX_CHARS_LIMIT - 2)
        result = search_prefix(span(
            annotations=[Annotation(timestamp=1, value="a" * (INDEX_CHARS_LIMIT + 1))],
            tags={"k": limit_value, "big": "x" * INDEX_CHARS_LIMIT},
        ), 0)
        query = json.loads(result.prefix)["_q"]
        self.assertEqual(query, ["k", f"k={limit_value}"])

    def test_query_present_even_when_everything_filtered(self):
        result = search_prefix(span(tags={"big": "x" * INDEX_CHARS_LIMIT}), 0)
        self.assertEqual(result.prefix, b'{"_q":[]}')

    def test_characters_outside_bmp_count_twice(self):
        """Lengths are UTF-16 code units, as Zipkin counts them."""
        self.assertEqual(index_chars("\U0001F600"), 2)
        self.assertEqual(index_chars("\ud800"), 1)
        fits = "\U0001F600" * 127  # 1 + 254 + 1 = 256 units
        too_long = "\U0001F600" * 128  # 258 units, though only 130 code points with the key
        result = search_prefix(span(
            annotations=[Annotation(timestamp=1, value="\U0001F600" * 129)],
            tags={"k": fits, "x": too_long},
        ), 0)
        self.assertEqual(json.loads(result.prefix)["_q"], ["k", f"k={fits}"])


class TestMergeJson(unittest.TestCase):

    def test_merge(self):
        self.assertEqual(
            merge_json(b'{"timestamp_millis":1}', b'{"traceId":"a"}'),
            b'{"timestamp_millis":1,"traceId":"a"}',
        )

    def test_merged_document_has_union_of_fields(self):
        s = span(timestamp=1_600_000_000_000_000, tags={"error": "500"})
        document = prefix_with_timestamp_millis_and_query(s, 1_600_000_000_000)
        parsed = json.loads(document)
        self.assertEqual(parsed, {
            "timestamp_millis": 1_600_000_000_000,
            "_q": ["error", "error=500"],
            **json.loads(encode_span(s)),
        })
        self.assertTrue(document.startswith(b'{"timestamp_millis":1600000000000,"_q":["error","error=500"],"traceId"'))

    def test_no_prefix_is_canonical_encoding(self):
        s = span()
        self.assertEqual(prefix_with_timestamp_millis_and_query(s, 0), encode_span(s))

    def test_falls_back_to_canonical_encoding(self):
        """A failure writing the search fields leaves the span document unchanged."""
        s = span(timestamp=1_000, tags={"error": "500"})
        with patch("trace_storage.runtime.storage.span_consumer.json.dumps", side_effect=ValueError("boom")):
            with self.assertLogs("trace_storage.runtime.storage.span_consumer", level="DEBUG") as logs:
                result = search_prefix(s, 1)
                document = prefix_with_timestamp_millis_and_query(s, 1, encoder=lambda _: b'{"traceId":"x"}')
        self.assertFalse(result.ok)
        self.assertEqual(document, b'{"traceId":"x"}')
        self.assertTrue(all(record.levelname == "DEBUG" for record in logs.records))

    def test_unencodable_tag_falls_back(self):
        s = Span.model_construct(trace_id=TRACE_ID, id="1", tags={"bad": "\ud800"})
        self.assertFalse(search_prefix(s, 0).ok)


class TestAutocompleteDocument(unittest.TestCase):

    def test_document(self):
        self.assertEqual(
            autocomplete_document("http.status_code", "500"),
            b'{"tagKey":"http.status_code","tagValue":"500"}',
        )

    def test_escaped_size(self):
        document = autocomplete_document('say "hi"', "ünï")
        self.assertEqual(len(document), 27 + len(b'say \\"hi\\"') + len("ünï".encode("utf-8")))
        self.assertEqual(json.loads(document), {"tagKey": 'say "hi"', "tagValue": "ünï"})

    def test_context_equality(self):
        self.assertEqual(AutocompleteContext(1, "a=b"), AutocompleteContext(1, "a=b"))
        self.assertNotEqual(AutocompleteContext(1, "a=b"), AutocompleteContext(2, "a=b"))
        self.assertEqual(len({AutocompleteContext(1, "a=b"), AutocompleteContext(1, "a=b")}), 1)


if __name__ == "__main__":
    unittest.main()
