# tests/ingestion/test_parser.py
"""
Tests for the streaming semantic and extraction parsers.
"""

import json

import pytest

from ragcore.exceptions import ParseError
from ragcore.ingestion.chunk import Position
from ragcore.ingestion.parser import (
    Entity,
    ExtractionParser,
    Relationship,
    SemanticParser,
    positions_from_items,
)


def content_frame(text, finish=None):
    choice = {"delta": {"content": text}}
    if finish:
        choice["finish_reason"] = finish
    return ("data: " + json.dumps({"choices": [choice]})).encode()


def tool_frame(arguments, finish=None):
    choice = {"delta": {"tool_calls": [{"index": 0, "function": {"arguments": arguments}}]}}
    if finish:
        choice["finish_reason"] = finish
    return "data: " + json.dumps({"choices": [choice]})


def split_into(text, n):
    step = max(1, len(text) // n)
    return [text[i:i + step] for i in range(0, len(text), step)]


# =============================================================================
# SEMANTIC PARSER
# =============================================================================


class TestSemanticParserPayload:
    """Tests for complete payloads."""

    def test_fenced_content(self):
        """Fenced arrays in free-form content are parsed."""
        content = '```json\n[{"s":0,"e":50},{"s":50,"e":100}]\n```'
        assert SemanticParser(False).parse_payload(content) == [Position(0, 50), Position(50, 100)]

    def test_truncated_tool_arguments(self):
        """The last incomplete object of tool arguments is dropped."""
        args = '{"segments":[{"s":0,"e":300},{"s":300,"e":600},{"s":600,"e'
        assert SemanticParser(True).parse_payload(args) == [Position(0, 300), Position(300, 600)]

    def test_alternative_position_keys(self):
        """start_pos/end_pos are accepted alongside s/e."""
        content = '[{"start_pos": 0, "end_pos": 10}, {"s": 10, "e": 20}]'
        assert SemanticParser(False).parse_payload(content) == [Position(0, 10), Position(10, 20)]

    def test_segments_object_in_content(self):
        """Free-form output wrapped in a segments object still parses."""
        content = 'Result: {"segments": [{"s": 0, "e": 12}]}'
        assert SemanticParser(False).parse_payload(content) == [Position(0, 12)]

    def test_invalid_items_are_filtered(self):
        """Negative, reversed and non-numeric positions are dropped."""
        content = '[{"s":-1,"e":3},{"s":5,"e":5},{"s":"x","e":9},{"s":"2","e":7.5},"junk"]'
        assert SemanticParser(False).parse_payload(content) == [Position(2, 7)]

    def test_short_payload_is_empty(self):
        """Payloads under ten characters yield no positions."""
        assert SemanticParser(False).parse_payload("[]") == []

    def test_unparseable_final_payload_raises(self):
        """A finished stream with no array raises ParseError."""
        with pytest.raises(ParseError):
            SemanticParser(False).parse_payload("I cannot segment this text, sorry.")

    def test_tool_arguments_must_be_object(self):
        """Tool arguments that are not an object raise once finished."""
        with pytest.raises(ParseError):
            SemanticParser(True).parse_payload('[{"s":0,"e":10},{"s":10,"e":20}]')


class TestSemanticParserStreaming:
    """Tests for frame-by-frame parsing."""

    def test_frames_match_final_payload(self):
        """Feeding frames gives the same positions as parsing the whole payload."""
        payload = '```json\n[{"s":0,"e":40},{"s":40,"e":95},{"s":95,"e":130}]\n```'
        parser = SemanticParser(False)
        for piece in split_into(payload, 7):
            parser.parse_frame(content_frame(piece))
        parser.parse_frame(content_frame("", finish="stop"))

        assert parser.finalize() == SemanticParser(False).parse_payload(payload)

    def test_tool_frames_match_final_payload(self):
        """The same holds for tool-call arguments."""
        payload = '{"segments":[{"s":0,"e":11},{"s":11,"e":27}]}'
        parser = SemanticParser(True)
        for piece in split_into(payload, 5):
            parser.parse_frame(tool_frame(piece))

        assert parser.parse_frame(b"data: [DONE]") == [Position(0, 11), Position(11, 27)]
        assert parser.finished

    def test_partial_output_is_tolerated(self):
        """Unparseable partial output returns None until the stream finishes."""
        parser = SemanticParser(False)
        assert parser.parse_frame(content_frame("Thinking about it")) is None
        assert not parser.finished

    def test_partial_positions_are_reported(self):
        """Complete objects are visible before the stream ends."""
        parser = SemanticParser(False)
        positions = parser.parse_frame(content_frame('[{"s":0,"e":5},{"s":5,"e"'))
        assert positions == [Position(0, 5)]

    def test_ignored_frames(self):
        """Blank lines, comments and frames without choices are ignored."""
        parser = SemanticParser(False)
        assert parser.parse_frame(b"") is None
        assert parser.parse_frame(b": keep-alive") is None
        assert parser.parse_frame(b'data: {"choices": []}') is None
        assert parser.content == ""

    def test_finish_reason_marks_finished(self):
        """finish_reason ends the stream; garbage then raises."""
        parser = SemanticParser(False)
        with pytest.raises(ParseError):
            parser.parse_frame(content_frame("no positions in this answer", finish="stop"))
        assert parser.finished

    def test_accumulated_follows_mode(self):
        """Content is ignored in tool-call mode and vice versa."""
        parser = SemanticParser(True)
        parser.parse_frame(content_frame("text"))
        parser.parse_frame(tool_frame('{"seg'))
        assert parser.content == ""
        assert parser.accumulated == '{"seg'


def test_positions_from_items_prefers_long_keys():
    """start_pos wins over s when both are present."""
    assert positions_from_items([{"start_pos": 1, "s": 0, "end_pos": 4, "e": 9}]) == [Position(1, 4)]


# =============================================================================
# EXTRACTION PARSER
# =============================================================================


EXTRACTION = {
    "entities": [
        {
            "id": "e1",
            "name": "Ada Lovelace",
            "type": "PERSON",
            "description": " Mathematician ",
            "confidence": 1.7,
            "labels": ["Person"],
            "props": {"born": 1815},
        },
        {"id": "e2", "name": "Analytical Engine", "type": "", "confidence": "high"},
        {"id": "", "name": "nameless id"},
    ],
    "relationships": [
        {"start_node": "e1", "end_node": "e2", "type": "WORKED_ON", "confidence": 0.9, "weight": 2},
        {"start_node": "e1", "end_node": "e99", "type": "", "confidence": -1},
        {"start_node": "e1"},
    ],
}


class TestExtractionParser:
    """Tests for ExtractionParser."""

    def test_payload_defaults_and_clamping(self):
        """Missing fields get defaults and scores are clamped."""
        entities, relationships = ExtractionParser().parse_payload(json.dumps(EXTRACTION))

        assert [e.id for e in entities] == ["e1", "e2"]
        assert entities[0] == Entity(
            id="e1",
            name="Ada Lovelace",
            type="PERSON",
            description="Mathematician",
            confidence=1.0,
            labels=["Person"],
            props={"born": 1815},
        )
        assert entities[1].type == "UNKNOWN"
        assert entities[1].confidence == 0.5

        assert len(relationships) == 2
        assert relationships[0].weight == 1.0
        assert relationships[1] == Relationship(start_node="e1", end_node="e99", confidence=0.0)

    def test_unknown_entity_ids_are_kept(self):
        """Relationships may point at entities that were not extracted."""
        _, relationships = ExtractionParser().parse_payload(json.dumps(EXTRACTION))
        assert relationships[1].end_node == "e99"

    def test_streamed_tool_arguments(self):
        """Tool-call frames accumulate into the same result."""
        payload = json.dumps(EXTRACTION)
        parser = ExtractionParser(toolcall=True)
        for piece in split_into(payload, 9):
            parser.parse_frame(tool_frame(piece))
        entities, relationships = parser.finalize()
        assert len(entities) == 2 and len(relationships) == 2

    def test_duplicated_objects(self):
        """A repeated object appended by the model is ignored."""
        payload = json.dumps(EXTRACTION) + '{"entities": [{"id": "zz", "name": "dup"}]}'
        entities, _ = ExtractionParser().parse_payload(payload)
        assert [e.id for e in entities] == ["e1", "e2"]

    def test_prose_before_object_in_content_mode(self):
        """Content mode skips text before the first brace."""
        content = 'Sure! ```json\n{"entities": [{"id": "a", "name": "A"}], "relationships": []}\n```'
        entities, relationships = ExtractionParser(toolcall=False).parse_payload(content)
        assert entities == [Entity(id="a", name="A")]
        assert relationships == []

    def test_short_output(self):
        """Tiny outputs produce empty results."""
        assert ExtractionParser().parse_payload("{}") == ([], [])

    def test_unparseable_output_raises(self):
        """A finished stream that is not an object raises ParseError."""
        with pytest.raises(ParseError):
            ExtractionParser(toolcall=False).parse_payload("there is nothing to extract here")
