import json

from trace_storage.core.data.span_data import Span

# json.dumps leaves these raw with ensure_ascii=False, but they terminate lines in javascript
_LINE_SEPARATORS = {
    '\u2028': '\\u2028',
    '\u2029': '\\u2029',
}


def encode_span(span: Span) -> bytes:
    """
    Canonical Zipkin v2 JSON for a span: compact, camelCase field names in
    declaration order, unset fields omitted. Output always starts with '{'
    and ends with '}'.
    """
    return span.to_json().encode('utf-8')


def json_escape(value: str) -> str:
    """Escapes a string for use between double quotes in a JSON document."""
    escaped = json.dumps(value, ensure_ascii=False)[1:-1]
    for char, replacement in _LINE_SEPARATORS.items():
        escaped = escaped.replace(char, replacement)
    return escaped
