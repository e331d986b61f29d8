"""Tests for early step-0 narration detection in streamed plans."""

from __future__ import annotations

import json

import pytest

from whiteboard_mcp.streaming import FeedResult, StreamingPlanParser, decode_json_string


def _chunks(text: str, size: int) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


def _feed_all(parser: StreamingPlanParser, fragments) -> list[FeedResult]:
    return [parser.feed(f) for f in fragments]


class TestEscapeAwareBoundary:
    def test_detects_only_on_final_unescaped_quote(self):
        """Char-by-char feed must fire once, on the closing quote, with the decoded value."""
        text = r'"whiteboard": [ { "explanation": "He said \"hi\"\nand left"'
        parser = StreamingPlanParser()

        results = _feed_all(parser, text)

        hits = [i for i, r in enumerate(results) if r.detected]
        assert hits == [len(text) - 1]
        assert results[-1].explanation == 'He said "hi"\nand left'
        assert parser.explanation == 'He said "hi"\nand left'

    def test_escaped_quote_split_across_fragments(self):
        parser = StreamingPlanParser()
        parser.feed('{"whiteboard":[{"explanation":"a \\')
        assert not parser.detected
        parser.feed('"quoted\\" b')
        assert not parser.detected
        result = parser.feed('"}]}')
        assert result == FeedResult(True, 'a "quoted" b')

    def test_json_special_characters_inside_value(self):
        value = 'Braces {like this}, brackets [0], a colon: and "quotes"'
        doc = json.dumps({"whiteboard": [{"explanation": value, "origin": {"x": 0, "y": 0}}]})
        parser = StreamingPlanParser()

        _feed_all(parser, _chunks(doc, 5))

        assert parser.explanation == value

    def test_unicode_and_backslash_escapes(self):
        parser = StreamingPlanParser()
        parser.feed('{"whiteboard": [{"explanation": "caf\\u00e9 \\\\ tab\\there"}]}')
        assert parser.explanation == "café \\ tab\there"

    def test_incomplete_value_is_not_detected(self):
        parser = StreamingPlanParser()
        result = parser.feed('{"whiteboard": [{"explanation": "still talking about')
        assert result == FeedResult(False)
        assert parser.detected is False
        assert parser.explanation is None


class TestFiresOnce:
    def test_callback_fires_once_across_many_fragments(self, sample_plan_dict):
        calls: list[str] = []
        parser = StreamingPlanParser(on_first_narration=calls.append)
        doc = json.dumps(sample_plan_dict)

        results = _feed_all(parser, _chunks(doc, 3))
        _feed_all(parser, _chunks(doc, 3))

        assert calls == ["Imagine a drawbridge over a river."]
        assert sum(r.detected for r in results) == 1

    def test_feed_after_detection_only_accumulates(self):
        parser = StreamingPlanParser()
        parser.feed('{"whiteboard": [{"explanation": "first"}')
        result = parser.feed(', {"explanation": "second"}]}')

        assert result == FeedResult(False)
        assert parser.explanation == "first"
        assert parser.text.endswith('"second"}]}')

    def test_reset_starts_a_new_session(self):
        calls: list[str] = []
        parser = StreamingPlanParser(on_first_narration=calls.append)
        parser.feed('{"whiteboard": [{"explanation": "one"}]}')
        parser.reset()

        assert parser.text == ""
        assert parser.detected is False

        parser.feed('{"whiteboard": [{"explanation": "two"}]}')
        assert calls == ["one", "two"]


class TestStructure:
    @pytest.mark.parametrize("size", [1, 2, 7, 64, 10_000])
    def test_any_fragment_size(self, sample_plan_dict, size):
        parser = StreamingPlanParser()
        _feed_all(parser, _chunks(json.dumps(sample_plan_dict, indent=2), size))
        assert parser.explanation == "Imagine a drawbridge over a river."

    def test_top_level_explanation_is_ignored(self):
        parser = StreamingPlanParser()
        parser.feed('{"explanation": "overview", "whiteboard": [')
        assert not parser.detected
        parser.feed('{"explanation": "step zero"}]}')
        assert parser.explanation == "step zero"

    def test_key_order_inside_step_does_not_matter(self):
        parser = StreamingPlanParser()
        parser.feed(
            '{"whiteboard": [{"origin": {"x": 1, "y": 2}, "stepName": "Intro", '
            '"drawingPlan": [{"type": "circle", "id": "explanation"}], '
            '"explanation": "late narration"}]}'
        )
        assert parser.explanation == "late narration"

    def test_nested_explanation_keys_are_ignored(self):
        parser = StreamingPlanParser()
        parser.feed(
            '{"whiteboard": [{"annotations": [{"explanation": "not me"}], '
            '"meta": {"explanation": "nor me"}, "explanation": "me"}]}'
        )
        assert parser.explanation == "me"

    def test_only_the_first_step_counts(self):
        parser = StreamingPlanParser()
        parser.feed('{"whiteboard": [{"origin": {"x": 0, "y": 0}}, {"explanation": "step one"}]}')
        assert parser.detected is False

    def test_non_string_narration_is_ignored(self):
        parser = StreamingPlanParser()
        parser.feed('{"whiteboard": [{"explanation": null, "x": "value"}]}')
        assert parser.detected is False

    def test_reasoning_preamble_and_fences(self):
        parser = StreamingPlanParser()
        _feed_all(parser, _chunks(
            'Sure! Here is "the plan": it\'s below.\n```json\n'
            '{"explanation": "overview", "whiteboard": [ {\n  "explanation": "ready"\n} ]}\n```',
            4,
        ))
        assert parser.explanation == "ready"

    def test_stray_quote_in_preamble_is_abandoned_at_newline(self):
        parser = StreamingPlanParser()
        parser.feed('A 5" screen is small\n{"whiteboard": [{"explanation": "ok"}]}')
        assert parser.explanation == "ok"


class TestBuffer:
    def test_empty_fragment_is_a_no_op(self):
        parser = StreamingPlanParser()
        assert parser.feed("") == FeedResult(False)
        assert parser.text == ""

    def test_text_is_concatenation_of_fragments(self):
        parser = StreamingPlanParser()
        for part in ["{", '"a"', ": 1", "}"]:
            parser.feed(part)
        assert parser.text == '{"a": 1}'


class TestDecode:
    def test_invalid_escape_falls_back_to_basic_unescaping(self):
        assert decode_json_string(r'bad \q escape\n\"x\"') == 'bad \\q escape\n"x"'

    def test_raw_control_characters_allowed(self):
        assert decode_json_string("line\nbreak") == "line\nbreak"
