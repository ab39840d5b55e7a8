"""Tests for prompt config validation."""

from observ.prompts.config_validator import PromptConfigValidator, validate_config

class TestPromptConfigValidator:
    """Tests for PromptConfigValidator."""

    def test_valid_config(self):
        """Test a config within every range."""
        config = {
            "temperature": 0.7,
            "max_tokens": 500,
            "top_p": 0.9,
            "stop_sequences": ["END"],
            "model": "gpt-4o-mini",
            "stream": False,
        }
        assert validate_config(config) == []

    def test_empty_configs_are_valid(self):
        """Test that None and empty maps pass."""
        assert validate_config(None) == []
        assert validate_config({}) == []

    def test_non_mapping_rejected(self):
        """Test that a config that is not a map is rejected."""
        assert validate_config("temperature=1") == ["Config must be a Hash"]
        assert validate_config([1, 2]) == ["Config must be a Hash"]

    def test_out_of_range(self):
        """Test range error messages."""
        errors = validate_config({"temperature": 3.0, "max_tokens": 0})
        assert "temperature must be between 0.0 and 2.0" in errors
        assert "max_tokens must be between 1 and 100000" in errors

    def test_numeric_strings_coerced(self):
        """Test that numeric strings are converted in place."""
        config = {"max_tokens": "500", "temperature": "0.5"}
        validator = PromptConfigValidator(config)

        assert validator.valid() is True
        assert config == {"max_tokens": 500, "temperature": 0.5}

    def test_type_errors(self):
        """Test type error messages."""
        errors = validate_config({"max_tokens": "lots", "temperature": True, "model": 4})
        assert "max_tokens must be an integer" in errors
        assert "temperature must be a number" in errors
        assert "model must be a string" in errors

    def test_array_items_checked(self):
        """Test that each stop sequence must be a string."""
        errors = validate_config({"stop_sequences": ["END", 1]})
        assert errors == ["stop_sequences[1] must be a string"]

    def test_unknown_keys_allowed_by_default(self):
        """Test that keys outside the schema pass in non-strict mode."""
        assert validate_config({"custom": 1}) == []

    def test_unknown_keys_rejected_in_strict_mode(self):
        """Test strict mode rejects keys outside the schema."""
        errors = validate_config({"foo": 1, "bar": 2, "temperature": 1.0}, strict=True)
        assert errors == ["Unknown configuration keys: foo, bar"]

    def test_custom_schema(self):
        """Test validating against a custom schema with a required key."""
        schema = {"model": {"type": "string", "required": True}}
        validator = PromptConfigValidator({"temperature": 1}, schema=schema)

        assert validator.valid() is False
        assert validator.errors == ["model is required"]
