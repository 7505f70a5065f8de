"""Tests for output parsing. The parser never raises."""

from contextflow.graph.parsers import parse_json, parse_list, parse_output, parse_structured


class TestJsonParser:
    def test_extracts_embedded_object(self):
        assert parse_output('answer is {"a":1}', "json") == {"a": 1}

    def test_non_json_is_wrapped(self):
        assert parse_output("no braces here", "json") == {"content": "no braces here"}

    def test_broken_json_is_wrapped(self):
        assert parse_output("{not: valid", "json") == {"content": "{not: valid"}

    def test_code_fence(self):
        text = '```json\n{"name": "x", "tags": ["a"]}\n```'

        assert parse_json(text) == {"name": "x", "tags": ["a"]}

    def test_python_style_literals_are_repaired(self):
        assert parse_json("{'ok': True, 'value': None}") == {"ok": True, "value": None}

    def test_mapping_passes_through(self):
        assert parse_json({"already": "parsed"}) == {"already": "parsed"}

    def test_parser_type_is_case_insensitive(self):
        assert parse_output('{"a": 2}', "JSON") == {"a": 2}


class TestListParser:
    def test_splits_lines_and_drops_blanks(self):
        assert parse_list("one\n\n  two  \n\nthree\n") == ["one", "two", "three"]

    def test_list_input(self):
        assert parse_list(["a", "", "b"]) == ["a", "b"]


class TestStructuredParser:
    def test_matches_configured_fields(self):
        text = "Summary: short text\nSENTIMENT: positive\nunrelated line"
        schema = {"fields": [{"name": "summary"}, {"name": "sentiment"}, {"name": "score"}]}

        assert parse_structured(text, schema) == {"summary": "short text", "sentiment": "positive"}

    def test_schema_as_list_of_names(self):
        assert parse_output("title: Hello", "structured", ["title"]) == {"title": "Hello"}


class TestDispatch:
    def test_unknown_parser_is_identity(self):
        assert parse_output("text", "yaml") == "text"
        assert parse_output("text", None) == "text"
