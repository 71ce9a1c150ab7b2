"""
Tests for the text length policy.

Tests cover:
- Empty / whitespace / non-string rejection
- Warning band between warning_length and max_length
- Sentence-boundary truncation with a trailing period
- Word-boundary fallback with an ellipsis
- Length bound on every truncated result
- Identifier checks
"""
import pytest

from narration_ms.services.validators import (
    ELLIPSIS,
    TEXT_REQUIRED,
    ValidationOutcome,
    truncate_text,
    validate_identifier,
    validate_text,
)


class TestValidateText:
    """Tests for validate_text()."""

    @pytest.mark.parametrize("text", [None, "", "   ", "\n\t", 42, ["a"]])
    def test_rejects_missing_text(self, text):
        outcome = validate_text(text, max_length=100, warning_length=80)
        assert outcome.valid is False
        assert outcome.reason == TEXT_REQUIRED
        assert outcome.text is None

    def test_short_text_unchanged(self):
        outcome = validate_text("Hello world", max_length=100, warning_length=80)
        assert outcome == ValidationOutcome(valid=True, text="Hello world")

    def test_text_is_trimmed(self):
        outcome = validate_text("  Hello  ", max_length=100, warning_length=80)
        assert outcome.text == "Hello"

    def test_at_max_length_not_truncated(self):
        text = "a" * 100
        outcome = validate_text(text, max_length=100, warning_length=200)
        assert outcome.text == text
        assert outcome.warning is None
        assert outcome.truncated is False

    def test_warning_band(self):
        text = "word " * 20  # 99 chars after trim
        outcome = validate_text(text, max_length=100, warning_length=50)
        assert outcome.valid
        assert outcome.text == text.strip()
        assert outcome.truncated is False
        assert "exceeds the recommended 50 characters" in outcome.warning

    def test_truncation_is_valid_with_warning(self):
        text = "First sentence here. Second sentence is a lot longer than the limit allows."
        outcome = validate_text(text, max_length=40, warning_length=30)
        assert outcome.valid
        assert outcome.truncated is True
        assert outcome.text == "First sentence here."
        assert f"Text length ({len(text)}) exceeds maximum (40)" in outcome.warning
        assert f"truncated to {len(outcome.text)} characters" in outcome.warning


class TestTruncateText:
    """Tests for truncate_text()."""

    def test_cuts_at_last_sentence_boundary(self):
        text = "One sentence ends. Another one ends! And the third goes on and on"
        assert truncate_text(text, 45) == "One sentence ends. Another one ends."

    def test_punctuation_run_replaced_by_single_period(self):
        text = "Is this really happening?!? Yes it is and it keeps going"
        assert truncate_text(text, 40) == "Is this really happening."

    def test_short_sentence_falls_back_to_word_boundary(self):
        text = "Hi. this text keeps going without another stop for a while"
        result = truncate_text(text, 30)
        assert result.endswith(ELLIPSIS)
        assert result == "Hi. this text keeps going..."

    def test_word_boundary_without_punctuation(self):
        text = "alpha beta gamma delta epsilon zeta eta theta"
        result = truncate_text(text, 20)
        assert result == "alpha beta gamma..."

    def test_window_ending_on_word_boundary_keeps_last_word(self):
        text = "alpha beta gamma delta"
        # text[16] is the space after "gamma"
        assert truncate_text(text, 16) == "alpha beta gamma..."

    def test_no_whitespace_hard_cut(self):
        text = "x" * 50
        assert truncate_text(text, 20) == "x" * 20 + ELLIPSIS

    def test_short_text_unchanged(self):
        assert truncate_text("short", 20) == "short"

    def test_deterministic(self):
        text = "Some words here, and more words. Then a long tail without end " * 5
        assert truncate_text(text, 120) == truncate_text(text, 120)

    @pytest.mark.parametrize("max_length", [1, 5, 11, 37, 100, 250])
    def test_result_bounded(self, max_length):
        texts = [
            "Lorem ipsum dolor sit amet. " * 20,
            "nospaces" * 50,
            "a b c d e f g h i j k l m n o p q r s t u v w x y z " * 10,
            "Why? Because! " * 30,
        ]
        for text in texts:
            result = truncate_text(text, max_length)
            assert len(result) <= max_length + len(ELLIPSIS)
            core = result[:-len(ELLIPSIS)] if result.endswith(ELLIPSIS) else result[:-1]
            assert text.startswith(core)


class TestValidateIdentifier:
    def test_none_is_fine(self):
        assert validate_identifier(None, "voice_id") is None

    def test_typical_ids(self):
        assert validate_identifier("21m00Tcm4TlvDq8ikWAM", "voice_id") is None
        assert validate_identifier("eleven_multilingual_v2", "model_id") is None
        assert validate_identifier("model-1.5", "model_id") is None

    @pytest.mark.parametrize("value", ["", "  ", "../etc", "a/b", "voice id", "x" * 101])
    def test_rejected(self, value):
        reason = validate_identifier(value, "voice_id")
        assert reason is not None
        assert "voice_id" in reason
