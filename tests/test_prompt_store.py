"""Tests for the prompt version store."""

import pytest
import yaml

from observ.config import PromptSettings
from observ.errors import (
    ImmutablePromptError,
    InvalidStateTransitionError,
    MissingVariablesError,
    NotFoundError,
    PromptNotFoundError,
    ValidationError,
)
from observ.models.prompt import FallbackPrompt, PromptEvent, PromptState
from observ.prompts.store import PromptVersionStore
from observ.testing.mocks import InMemoryPromptRepository

class TestCreateVersion:
    """Tests for creating prompt versions."""

    def test_versions_are_numbered_per_name(self, store):
        """Test that versions count up from 1 for each name."""
        v1 = store.create_version("greet", "Hello {{name}}")
        v2 = store.create_version("greet", "Hi {{name}}")
        v3 = store.create_version("greet", "Hey {{name}}")
        other = store.create_version("farewell", "Bye")

        assert [v1.version, v2.version, v3.version] == [1, 2, 3]
        assert other.version == 1
        assert all(p.state == PromptState.DRAFT for p in (v1, v2, v3, other))

    def test_blank_name_and_text_rejected(self, store, prompt_repository):
        """Test that blank fields raise and nothing is persisted."""
        with pytest.raises(ValidationError) as exc_info:
            store.create_version("  ", "")

        assert "name can't be blank" in exc_info.value.errors
        assert "text can't be blank" in exc_info.value.errors
        assert prompt_repository.prompts == {}

    def test_invalid_config_rejected(self, store):
        """Test that config errors prevent creation."""
        with pytest.raises(ValidationError) as exc_info:
            store.create_version("greet", "Hello", config={"temperature": 5})

        assert exc_info.value.errors == ["temperature must be between 0.0 and 2.0"]
        assert store.versions("greet") == []

    def test_strict_schema_from_settings(self, prompt_repository):
        """Test that strict settings reject unknown config keys."""
        strict_store = PromptVersionStore(
            prompt_repository,
            settings=PromptSettings(config_schema_strict=True),
        )
        with pytest.raises(ValidationError):
            strict_store.create_version("greet", "Hello", config={"colour": "blue"})

    def test_json_string_config_parsed(self, store):
        """Test that a JSON string config is stored as a map."""
        prompt = store.create_version("greet", "Hello", config='{"max_tokens": "200"}')
        assert prompt.config == {"max_tokens": 200}

    def test_promote_to_production(self, store):
        """Test creating a version straight into production."""
        prompt = store.create_version("greet", "Hello", promote_to_production=True)

        assert prompt.state == PromptState.PRODUCTION
        assert store.fetch("greet").version == 1

class TestTransitions:
    """Tests for promote, demote, restore and rollback."""

    def test_promote_archives_previous_production(self, store):
        """Test that only one version is in production at a time."""
        store.create_version("greet", "v1")
        store.create_version("greet", "v2")
        store.promote("greet", 1)

        result = store.promote("greet", 2)

        assert result.applied is True
        assert result.from_state == PromptState.DRAFT
        assert result.to_state == PromptState.PRODUCTION
        assert result.demoted.version == 1
        states = {p.version: p.state for p in store.versions("greet")}
        assert states == {1: PromptState.ARCHIVED, 2: PromptState.PRODUCTION}

    def test_non_strict_transition_is_noop(self, store):
        """Test that an invalid non-strict transition changes nothing."""
        store.create_version("greet", "v1", promote_to_production=True)

        result = store.promote("greet", 1)

        assert result.applied is False
        assert result.event == PromptEvent.PROMOTE
        assert result.to_state == PromptState.PRODUCTION
        assert "not applied" in result.message
        assert store.fetch("greet").state == PromptState.PRODUCTION

    def test_strict_transition_raises(self, store):
        """Test that strict mode raises on an invalid transition."""
        store.create_version("greet", "v1")

        with pytest.raises(InvalidStateTransitionError):
            store.demote("greet", 1, strict=True)

    def test_demote_and_restore(self, store):
        """Test moving a version to the archive and back."""
        store.create_version("greet", "v1", promote_to_production=True)

        demoted = store.demote("greet", 1)
        assert demoted.prompt.state == PromptState.ARCHIVED
        assert store.lookup("greet") is None

        restored = store.restore("greet", 1)
        assert restored.prompt.state == PromptState.PRODUCTION
        assert store.fetch("greet").version == 1

    def test_restore_archives_current_production(self, store):
        """Test that restoring displaces the current production version."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.create_version("greet", "v2", promote_to_production=True)

        result = store.restore("greet", 1)

        assert result.demoted.version == 2
        assert store.fetch("greet").version == 1

    def test_transition_of_missing_version(self, store):
        """Test that transitions on unknown versions raise not found."""
        with pytest.raises(PromptNotFoundError):
            store.promote("greet", 9)

    def test_rollback(self, store):
        """Test rollback semantics for each state."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.create_version("greet", "v2", promote_to_production=True)
        store.create_version("greet", "v3")

        assert store.rollback("greet", 1).state == PromptState.PRODUCTION
        assert store.rollback("greet", 1).version == 1
        with pytest.raises(InvalidStateTransitionError, match="Cannot rollback to draft version"):
            store.rollback("greet", 3)

class TestEditing:
    """Tests for draft editing, cloning and deletion."""

    def test_update_draft(self, store):
        """Test editing a draft's text and config."""
        store.create_version("greet", "Hello")

        updated = store.update_draft("greet", 1, text="Hello there", config={"temperature": 0.2})

        assert updated.text == "Hello there"
        assert store.fetch("greet", version=1).config == {"temperature": 0.2}

    def test_update_production_rejected(self, store):
        """Test that production versions cannot be edited."""
        store.create_version("greet", "Hello", promote_to_production=True)

        with pytest.raises(ImmutablePromptError, match="Cannot edit production prompt. Clone to draft first."):
            store.update_draft("greet", 1, text="Changed")

        assert store.fetch("greet").text == "Hello"

    def test_clone_to_draft(self, store):
        """Test cloning a production version into a new draft."""
        store.create_version("greet", "Hello", config={"temperature": 0.3}, promote_to_production=True)

        clone = store.clone_to_draft("greet", 1, created_by="ana")

        assert clone.version == 2
        assert clone.state == PromptState.DRAFT
        assert clone.text == "Hello"
        assert clone.config == {"temperature": 0.3}
        assert clone.commit_message == "Cloned from v1 (production)"
        assert clone.created_by == "ana"

    def test_delete_version(self, store):
        """Test deleting drafts and refusing production."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.create_version("greet", "v2")

        store.delete_version("greet", 2)
        assert [p.version for p in store.versions("greet")] == [1]

        with pytest.raises(ImmutablePromptError):
            store.delete_version("greet", 1)

class TestFetch:
    """Tests for fetching, fallbacks and caching."""

    def test_fetch_production_by_default(self, store):
        """Test that fetch returns the production version."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.create_version("greet", "v2")

        assert store.fetch("greet").text == "v1"
        assert store.fetch("greet", state="draft").text == "v2"
        assert store.fetch("greet", version=2).text == "v2"

    def test_fetch_missing_raises(self, store):
        """Test that a missing prompt raises a not found error."""
        with pytest.raises(PromptNotFoundError, match="Prompt 'nope' not found"):
            store.fetch("nope")

        assert issubclass(PromptNotFoundError, NotFoundError)

    def test_fallback(self, store):
        """Test that fallback text is wrapped when nothing matches."""
        prompt = store.fetch("nope", fallback="Be helpful.")

        assert isinstance(prompt, FallbackPrompt)
        assert prompt.is_fallback is True
        assert prompt.version is None
        assert prompt.config == {}
        assert prompt.compile({"x": 1}) == "Be helpful."

    def test_lookup_returns_none(self, store):
        """Test the optional lookup."""
        assert store.lookup("nope") is None

    def test_promotion_invalidates_cache(self, store):
        """Test that a promotion is visible to the next fetch."""
        store.create_version("greet", "v1", promote_to_production=True)
        assert store.fetch("greet").version == 1

        store.create_version("greet", "v2", promote_to_production=True)

        assert store.fetch("greet").version == 2

    def test_cache_serves_repeat_fetches(self, store, prompt_repository):
        """Test that repeated fetches hit the cache."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.fetch("greet")
        lookups_before = len([c for c in prompt_repository.calls if c[0] == "find_by_state"])

        store.fetch("greet")
        store.fetch("greet")

        lookups_after = len([c for c in prompt_repository.calls if c[0] == "find_by_state"])
        assert lookups_after == lookups_before
        assert store.cache_stats("greet")["hits"] == 2

    def test_mutating_fetched_prompt_does_not_leak(self, store):
        """Test that callers cannot change what later fetches return."""
        store.create_version("greet", "Hi", config={"temperature": 0.2}, promote_to_production=True)

        store.fetch("greet").config["temperature"] = 1.9
        store.fetch("greet").config["max_tokens"] = 5

        assert store.fetch("greet").config == {"temperature": 0.2}
        assert store.cache_stats("greet")["hits"] == 2

    def test_disabled_cache_always_loads(self, prompt_repository):
        """Test that a zero TTL reads the repository every time."""
        uncached = PromptVersionStore(prompt_repository, settings=PromptSettings(cache_ttl=0))
        uncached.create_version("greet", "v1", promote_to_production=True)

        uncached.fetch("greet")
        uncached.fetch("greet")

        assert len([c for c in prompt_repository.calls if c[0] == "find_by_state"]) == 2

    def test_warm_cache(self, store):
        """Test warming existing and missing prompts."""
        store.create_version("greet", "v1", promote_to_production=True)

        results = store.warm_cache(["greet", "missing"])

        assert results["success"] == ["greet"]
        assert results["failed"][0]["name"] == "missing"

    def test_warm_cache_defaults(self, prompt_repository):
        """Test that warming defaults to critical prompts, then production names."""
        critical = PromptVersionStore(
            prompt_repository,
            settings=PromptSettings(critical_prompts=["greet"]),
        )
        critical.create_version("greet", "v1", promote_to_production=True)
        critical.create_version("other", "v1", promote_to_production=True)

        assert critical.critical_prompt_names() == ["greet"]

        plain = PromptVersionStore(prompt_repository)
        assert plain.critical_prompt_names() == ["greet", "other"]

class TestNavigationAndComparison:
    """Tests for version navigation, listing and comparison."""

    def test_navigation(self, store):
        """Test latest, previous and next version helpers."""
        v1 = store.create_version("greet", "v1")
        v2 = store.create_version("greet", "v2")
        v3 = store.create_version("greet", "v3")

        assert store.latest_version("greet").version == 3
        assert store.previous_version(v2).version == 1
        assert store.next_version(v2).version == 3
        assert store.previous_version(v1) is None
        assert store.next_version(v3) is None
        assert store.latest_version("none") is None

    def test_names(self, store):
        """Test listing names, optionally by state."""
        store.create_version("b", "text", promote_to_production=True)
        store.create_version("a", "text")

        assert store.names() == ["a", "b"]
        assert store.names("production") == ["b"]

    def test_compare_versions(self, store):
        """Test line-level comparison of two versions."""
        store.create_version("greet", "Hello\nHow are you?\n")
        store.create_version("greet", "Hello\nWhat's up?\n")

        comparison = store.compare_versions("greet", 1, 2)

        assert comparison["from"].version == 1
        assert comparison["to"].version == 2
        assert comparison["diff"]["added_lines"] == ["What's up?\n"]
        assert comparison["diff"]["removed_lines"] == ["How are you?\n"]
        assert comparison["diff"]["changed"] is True

class TestCompile:
    """Tests for compiling through the store."""

    def test_compile(self):
        """Test lenient compilation."""
        assert PromptVersionStore.compile("Hi {{name}}", {"name": "Ann"}) == "Hi Ann"

    def test_compile_with_validation(self, store):
        """Test strict compilation reports missing variables."""
        prompt = store.create_version("greet", "Hi {{name}} in {{city}}")

        with pytest.raises(MissingVariablesError) as exc_info:
            store.compile_with_validation(prompt.text, {"city": "Oslo"})

        assert exc_info.value.missing == ["name"]
        assert prompt.compile({"name": "Ann"}) == "Hi Ann in {{city}}"

class TestImportExport:
    """Tests for YAML export and import."""

    def test_export_single_version(self, store):
        """Test exporting one version."""
        store.create_version("greet", "Hello {{name}}", config={"temperature": 0.5})

        data = yaml.safe_load(store.export_yaml("greet", version=1))

        assert data["name"] == "greet"
        assert data["version"] == 1
        assert data["config"] == {"temperature": 0.5}
        assert "id" not in data

    def test_export_import_all_versions(self, store, prompt_repository):
        """Test exporting every version and importing into another store."""
        store.create_version("greet", "v1", promote_to_production=True)
        store.create_version("greet", "v2", commit_message="Shorter")
        exported = store.export_yaml("greet")

        target = PromptVersionStore(InMemoryPromptRepository())
        imported = target.import_yaml(exported, created_by="importer")

        assert [p.text for p in imported] == ["v1", "v2"]
        assert all(p.state == PromptState.DRAFT for p in imported)
        assert imported[0].commit_message == "Imported from v1"
        assert imported[1].commit_message == "Shorter"
        assert imported[0].created_by == "importer"

    def test_export_missing(self, store):
        """Test exporting an unknown prompt."""
        with pytest.raises(PromptNotFoundError):
            store.export_yaml("nope")

    def test_import_invalid_document(self, store):
        """Test importing something that is not a prompt document."""
        with pytest.raises(ValidationError):
            store.import_yaml("- just\n- strings\n")

class TestSQLiteBackedStore:
    """Tests for the store against the SQLite repository."""

    def test_lifecycle(self, sqlite_store):
        """Test create, promote and fetch through SQLite."""
        sqlite_store.create_version("greet", "v1", config={"max_tokens": 100})
        sqlite_store.create_version("greet", "v2")
        sqlite_store.promote("greet", 1)
        sqlite_store.promote("greet", 2)

        production = sqlite_store.fetch("greet")
        assert production.version == 2
        assert sqlite_store.fetch("greet", version=1).state == PromptState.ARCHIVED
        assert sqlite_store.fetch("greet", version=1).config == {"max_tokens": 100}

    def test_edit_rules(self, sqlite_store):
        """Test immutability of production versions through SQLite."""
        sqlite_store.create_version("greet", "v1", promote_to_production=True)

        with pytest.raises(ImmutablePromptError):
            sqlite_store.update_draft("greet", 1, text="changed")
        with pytest.raises(ImmutablePromptError):
            sqlite_store.delete_version("greet", 1)


class TestSingleProduction:
    """Tests that a name never has more than one production version."""

    STEPS = [
        ("create", "greet", True),
        ("create", "greet", False),
        ("create", "farewell", True),
        ("promote", "greet", 2),
        ("restore", "greet", 1),
        ("create", "greet", True),
        ("demote", "greet", 3),
        ("restore", "greet", 2),
        ("promote", "greet", 2),
        ("create", "farewell", False),
        ("promote", "farewell", 2),
        ("restore", "farewell", 1),
        ("demote", "farewell", 1),
        ("restore", "greet", 3),
    ]

    @pytest.mark.parametrize("store_fixture", ["store", "sqlite_store"])
    def test_mixed_sequence(self, request, store_fixture):
        """Test every step of a mixed create/promote/demote/restore sequence."""
        prompt_store = request.getfixturevalue(store_fixture)

        for action, name, arg in self.STEPS:
            if action == "create":
                prompt_store.create_version(name, f"{name} text", promote_to_production=arg)
            else:
                getattr(prompt_store, action)(name, arg)

            for checked in ("greet", "farewell"):
                productions = sum(p.is_production for p in prompt_store.versions(checked))
                assert productions <= 1, f"{checked} after {action} {name} {arg}"

        assert prompt_store.fetch("greet").version == 3
        assert prompt_store.lookup("farewell") is None
        assert [p.state for p in prompt_store.versions("greet")] == [
            PromptState.PRODUCTION, PromptState.ARCHIVED, PromptState.ARCHIVED,
        ]
