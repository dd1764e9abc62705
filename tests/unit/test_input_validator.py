"""
Unit tests for InputValidator.
"""

import pytest

from src.core.validation.input_validator import InputValidator
from src.modules.shared.exceptions import ValidationError


class TestValidateIdentifier:
    """Test identity and quest identifier validation."""

    def test_accepts_valid_identifier(self):
        assert InputValidator.validate_identifier("user_000001", "user_id") == "user_000001"

    def test_accepts_quest_id_charset(self):
        quest_id = "daily-2025-01-06-web-developer-0"

        assert InputValidator.validate_identifier(quest_id, "quest_id") == quest_id

    @pytest.mark.parametrize("value", [None, ""])
    def test_rejects_missing(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_identifier(value, "user_id")

        assert exc_info.value.field == "user_id"

    def test_rejects_non_string(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_identifier(12345678901, "user_id")

    def test_enforces_min_length(self):
        """Identity strings shorter than the minimum are malformed."""
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_identifier("short", "user_id", min_length=10)

        assert "at least 10" in exc_info.value.message

    def test_enforces_max_length(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_identifier("x" * 129, "quest_id")

    @pytest.mark.parametrize(
        "value", ["user/000001", "user 000001", "user\n00001", "user_00001\n"]
    )
    def test_rejects_characters_outside_charset(self, value):
        """The ledger key separator can never appear inside an identifier."""
        with pytest.raises(ValidationError):
            InputValidator.validate_identifier(value, "user_id")


class TestValidateReward:
    """XP rewards are strict positive ints."""

    def test_accepts_positive_int(self):
        assert InputValidator.validate_reward(50) == 50

    @pytest.mark.parametrize("value", [0, -1, -300])
    def test_rejects_non_positive(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_reward(value)

    @pytest.mark.parametrize("value", [True, False, "50", 50.0, None])
    def test_rejects_non_int_types(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_reward(value)

        assert exc_info.value.field == "xp_reward"


class TestValidateInteger:
    """CLI-style integer parsing."""

    def test_converts_numeric_string(self):
        assert InputValidator.validate_integer("42", "level") == 42

    def test_bounds(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(5, "level", max_value=3)
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(-1, "level", min_value=0)

    def test_rejects_garbage(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer("abc", "level")


class TestValidateStringAndChoice:

    def test_string_is_stripped(self):
        assert InputValidator.validate_string("  Web Developer ", "career") == "Web Developer"

    def test_string_too_long(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("x" * 101, "career", max_length=100)

    def test_blank_string_rejected(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("   ", "name")

    def test_choice_returns_canonical_spelling(self):
        choices = ("beginner", "intermediate", "advanced")

        assert InputValidator.validate_choice("Advanced", "experience", choices) == "advanced"

    def test_choice_rejects_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_choice("expert", "experience", ("beginner",))

        assert "beginner" in exc_info.value.message
