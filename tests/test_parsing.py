"""Tests for JSON and code-block extraction from LLM text."""

from phaestus.llm.parsing import (
    extract_code_block,
    extract_code_blocks,
    parse_json,
    parse_json_object,
)


class TestParseJson:
    def test_plain_object(self):
        assert parse_json('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"names": [{"name": "Lumo"}]}\n```\nEnjoy.'
        assert parse_json(text) == {"names": [{"name": "Lumo"}]}

    def test_object_embedded_in_prose(self):
        text = 'Sure! The result is {"score": 72, "verdict": "revise"} as requested.'
        assert parse_json(text) == {"score": 72, "verdict": "revise"}

    def test_braces_inside_strings_do_not_end_the_object(self):
        text = 'prefix {"code": "void f() { return; }", "ok": true} suffix'
        assert parse_json(text) == {"code": "void f() { return; }", "ok": True}

    def test_top_level_array(self):
        assert parse_json('[{"style": "minimal"}]') == [{"style": "minimal"}]

    def test_nothing_parseable(self):
        assert parse_json("no json here") is None
        assert parse_json("") is None
        assert parse_json("{broken: ") is None

    def test_scalar_is_not_a_container(self):
        assert parse_json("42") is None


class TestParseJsonObject:
    def test_skips_leading_array(self):
        text = 'uint8_t buf[10]; then {"files": []}'
        assert parse_json_object(text) == {"files": []}

    def test_array_only_returns_none(self):
        assert parse_json_object("[1, 2, 3]") is None


class TestExtractCodeBlock:
    def test_prefers_requested_language(self):
        text = "```text\nnotes\n```\n```openscad\ncube(10);\n```"
        assert extract_code_block(text, "openscad") == "cube(10);"

    def test_falls_back_to_first_block(self):
        text = "```\ncube(10);\n```"
        assert extract_code_block(text, "openscad") == "cube(10);"

    def test_no_fences(self):
        assert extract_code_block("cube(10);", "openscad") is None

    def test_all_blocks_in_order(self):
        text = "```cpp\nint a;\n```\n```JSON\n{}\n```"
        assert extract_code_blocks(text) == [("cpp", "int a;"), ("json", "{}")]
