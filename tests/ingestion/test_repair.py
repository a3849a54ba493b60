# tests/ingestion/test_repair.py
"""
Tests for the JSON repair helpers.
"""

import pytest

from ragcore.ingestion.repair import (
    collapse_duplicate_objects,
    complete_last_object,
    extract_json_array,
    loads_with_repair,
    repair_json,
    strip_fences,
    to_int,
)


class TestStripAndExtract:
    """Tests for fence stripping and array extraction."""

    def test_strip_fences(self):
        """Markdown fences and whitespace are removed."""
        assert strip_fences("```json\n[1, 2]\n```") == "[1, 2]"
        assert strip_fences("```\n{}\n```") == "{}"

    def test_extract_array_from_prose(self):
        """The array is cut out of surrounding text."""
        raw = 'Here are the segments: [{"s":0,"e":5}] hope this helps'
        assert extract_json_array(raw) == '[{"s":0,"e":5}]'

    def test_extract_unterminated_array(self):
        """Without a closing bracket everything from the first one is kept."""
        assert extract_json_array('ok [{"s":0,"e":5},{"s"') == '[{"s":0,"e":5},{"s"'

    def test_extract_without_array(self):
        """No bracket, no array."""
        assert extract_json_array("no json here") == ""


class TestCompleteLastObject:
    """Tests for the truncation heuristic."""

    def test_tool_arguments(self):
        """A truncated trailing object is dropped and the envelope closed."""
        raw = '{"segments":[{"s":0,"e":300},{"s":300,"e":600},{"s":600,"e'
        assert complete_last_object(raw, "]}") == '{"segments":[{"s":0,"e":300},{"s":300,"e":600}]}'

    def test_bare_array_with_spaces(self):
        """The boundary may contain whitespace."""
        raw = '[{"s":0,"e":1}, {"s":1,"e":2}, {"s":2'
        assert complete_last_object(raw, "]") == '[{"s":0,"e":1}, {"s":1,"e":2}]'

    def test_closed_input_unchanged(self):
        """Complete payloads pass through."""
        raw = '[{"s":0,"e":1},{"s":1,"e":2}]'
        assert complete_last_object(raw, "]") == raw

    def test_no_boundary(self):
        """Input without a second object is left alone."""
        assert complete_last_object('[{"s":0', "]") == '[{"s":0'


class TestRepairAndLoads:
    """Tests for the layered parser."""

    def test_strict_json_first(self):
        """Valid JSON is parsed directly."""
        assert loads_with_repair('{"a": [1]}', "]}") == {"a": [1]}

    def test_truncated_positions(self):
        """The domain heuristic recovers truncated position lists."""
        raw = '{"segments":[{"s":0,"e":3},{"s":3,"e":'
        assert loads_with_repair(raw, "]}") == {"segments": [{"s": 0, "e": 3}]}

    def test_generic_repair(self):
        """Trailing commas and missing brackets go through json_repair."""
        assert loads_with_repair('[{"s": 0, "e": 4},]', "]") == [{"s": 0, "e": 4}]

    def test_repair_json_rejects_empty(self):
        """Nothing recoverable raises ValueError."""
        with pytest.raises(ValueError):
            repair_json("")

    def test_collapse_duplicates(self):
        """Only the first of two concatenated extraction objects is kept."""
        raw = '{"entities":[],"relationships":[]}{"entities":[{"id":"x"}]}'
        assert collapse_duplicate_objects(raw) == '{"entities":[],"relationships":[]}'


class TestToInt:
    """Tests for integer coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (5, 5),
            (5.9, 5),
            ("12", 12),
            (" 7.0 ", 7),
            ("abc", -1),
            (None, -1),
            (True, -1),
            (float("inf"), -1),
            ([1], -1),
        ],
    )
    def test_coercion(self, value, expected):
        """Numbers and numeric strings convert; everything else is -1."""
        assert to_int(value) == expected
