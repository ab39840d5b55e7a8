"""Versioned prompt management with lifecycle transitions and caching."""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from observ.config import PromptSettings
from observ.errors import (
    ImmutablePromptError,
    InvalidStateTransitionError,
    PromptNotFoundError,
    ValidationError,
)
from observ.interfaces.prompt_repository import IPromptRepository
from observ.models.prompt import (
    FallbackPrompt,
    PromptEvent,
    PromptState,
    PromptVersion,
    TransitionResult,
    can_transition,
    transition_target,
)
from observ.prompts.cache import PromptCache
from observ.prompts.config_validator import PromptConfigValidator
from observ.prompts.template import compile_template, compile_with_validation

logger = logging.getLogger(__name__)


class PromptVersionStore:
    """Manages the versioned lifecycle of named prompt templates.

    Versions start as drafts, are promoted to production (at most one per
    name, the previous one is archived) and can be restored from the
    archive. Only drafts may be edited. Lookups go through a TTL cache that
    every mutation of a name invalidates.

    Attributes:
        repository: Storage backend for prompt versions.
        settings: Prompt settings (cache, default state, strict schema).
        cache: Cache for fetched versions.
    """

    def __init__(
        self,
        repository: IPromptRepository,
        settings: Optional[PromptSettings] = None,
        cache: Optional[PromptCache] = None,
    ):
        """Initialize the store.

        Args:
            repository: Storage backend for prompt versions.
            settings: Prompt settings. Defaults to PromptSettings().
            cache: Cache to use. Built from the settings if omitted.
        """
        self.repository = repository
        self.settings = settings or PromptSettings()
        self.cache = cache or PromptCache(
            ttl=self.settings.cache_ttl,
            namespace=self.settings.cache_namespace,
            monitoring_enabled=self.settings.cache_monitoring_enabled,
        )

    # ============================================================
    # Creation and editing
    # ============================================================

    def create_version(
        self,
        name: str,
        text: str,
        config: Optional[Dict[str, Any]] = None,
        commit_message: Optional[str] = None,
        created_by: Optional[str] = None,
        promote_to_production: bool = False,
    ) -> PromptVersion:
        """Create the next version of a prompt as a draft.

        Args:
            name: Prompt name.
            text: Template body.
            config: Model parameters, validated against the config schema.
            commit_message: Optional description of the change.
            created_by: Optional author identifier.
            promote_to_production: Promote the new version right away.

        Returns:
            The created version.

        Raises:
            ValidationError: If the name, text or config is invalid. Nothing
                is persisted in that case.
        """
        config = self._validated_config(config, name=name, text=text)

        prompt = PromptVersion(
            name=name,
            version=self.repository.next_version_number(name),
            text=text,
            state=PromptState.DRAFT,
            config=config,
            commit_message=commit_message,
            created_by=created_by,
        )
        self.repository.insert(prompt)
        self.invalidate_cache(name)
        logger.info(f"Created prompt {name} v{prompt.version}")

        if promote_to_production:
            return self.promote(name, prompt.version, strict=True).prompt
        return prompt

    def update_draft(
        self,
        name: str,
        version: int,
        text: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        commit_message: Optional[str] = None,
    ) -> PromptVersion:
        """Edit the text, config or commit message of a draft.

        Raises:
            PromptNotFoundError: If the version does not exist.
            ImmutablePromptError: If the version is not a draft.
            ValidationError: If the new content is invalid.
        """
        prompt = self._require(name, version)
        if not prompt.editable:
            raise ImmutablePromptError(
                f"Cannot edit {prompt.state.value} prompt. Clone to draft first."
            )

        new_text = prompt.text if text is None else text
        new_config = prompt.config if config is None else config
        prompt.config = self._validated_config(new_config, name=name, text=new_text)
        prompt.text = new_text
        if commit_message is not None:
            prompt.commit_message = commit_message

        self.repository.update_content(prompt)
        self.invalidate_cache(name, version)
        logger.info(f"Updated draft {name} v{version}")
        return prompt

    def clone_to_draft(self, name: str, version: int, created_by: Optional[str] = None) -> PromptVersion:
        """Copy a version's text and config into a new draft version."""
        source = self._require(name, version)
        return self.create_version(
            name=name,
            text=source.text,
            config=dict(source.config),
            commit_message=f"Cloned from v{source.version} ({source.state.value})",
            created_by=created_by,
        )

    def delete_version(self, name: str, version: int) -> None:
        """Delete a draft or archived version.

        Raises:
            PromptNotFoundError: If the version does not exist.
            ImmutablePromptError: If the version is in production.
        """
        prompt = self._require(name, version)
        if not prompt.can_delete:
            raise ImmutablePromptError(
                f"Cannot delete production prompt {name} v{version}. Demote it first."
            )
        self.repository.delete(name, version)
        self.invalidate_cache(name, version)
        logger.info(f"Deleted prompt {name} v{version}")

    # ============================================================
    # Lookups
    # ============================================================

    def lookup(
        self,
        name: str,
        version: Optional[int] = None,
        state: Optional[Union[PromptState, str]] = None,
    ) -> Optional[PromptVersion]:
        """Find a version by number, or by state when no number is given.

        Goes through the cache. Returns None when nothing matches.
        """
        state_value = PromptState(state or self.settings.default_state).value
        key = self.cache.key(name, state=state_value, version=version)
        return self.cache.fetch(
            name,
            key,
            lambda: self._load(name, version=version, state=state_value),
        )

    def fetch(
        self,
        name: str,
        version: Optional[int] = None,
        state: Optional[Union[PromptState, str]] = None,
        fallback: Optional[str] = None,
    ) -> Union[PromptVersion, FallbackPrompt]:
        """Fetch a prompt version, falling back to fixed text if given.

        Args:
            name: Prompt name.
            version: Specific version number. Takes precedence over ``state``.
            state: State to look up. Defaults to the configured default state.
            fallback: Text to wrap in a FallbackPrompt when nothing matches.

        Returns:
            The matching version, or a FallbackPrompt.

        Raises:
            PromptNotFoundError: If nothing matches and no fallback was given.
        """
        prompt = self.lookup(name, version=version, state=state)
        if prompt is not None:
            return prompt
        if fallback is not None:
            logger.debug(f"Prompt '{name}' not found, using fallback text")
            return FallbackPrompt(name=name, text=fallback)
        raise PromptNotFoundError(f"Prompt '{name}' not found")

    def versions(self, name: str) -> List[PromptVersion]:
        """All versions of a prompt, newest first."""
        return self.repository.list_versions(name)

    def names(self, state: Optional[Union[PromptState, str]] = None) -> List[str]:
        return self.repository.list_names(PromptState(state) if state else None)

    def latest_version(self, name: str) -> Optional[PromptVersion]:
        """Highest-numbered version of a prompt, in any state."""
        prompts = self.versions(name)
        return prompts[0] if prompts else None

    def previous_version(self, prompt: PromptVersion) -> Optional[PromptVersion]:
        """Closest lower-numbered version of the same prompt."""
        older = [p for p in self.versions(prompt.name) if p.version < prompt.version]
        return older[0] if older else None

    def next_version(self, prompt: PromptVersion) -> Optional[PromptVersion]:
        """Closest higher-numbered version of the same prompt."""
        newer = [p for p in self.versions(prompt.name) if p.version > prompt.version]
        return newer[-1] if newer else None

    # ============================================================
    # State transitions
    # ============================================================

    def promote(self, name: str, version: int, strict: bool = False) -> TransitionResult:
        """Move a draft to production, archiving the current production version."""
        return self._transition(name, version, PromptEvent.PROMOTE, strict)

    def demote(self, name: str, version: int, strict: bool = False) -> TransitionResult:
        """Move a production version to the archive."""
        return self._transition(name, version, PromptEvent.DEMOTE, strict)

    def restore(self, name: str, version: int, strict: bool = False) -> TransitionResult:
        """Move an archived version back to production."""
        return self._transition(name, version, PromptEvent.RESTORE, strict)

    def rollback(self, name: str, to_version: int) -> PromptVersion:
        """Make ``to_version`` the production version again.

        Archived versions are restored and a version already in production
        is left alone.

        Raises:
            PromptNotFoundError: If the version does not exist.
            InvalidStateTransitionError: If the version is a draft.
        """
        prompt = self._require(name, to_version)
        if prompt.is_archived:
            return self.restore(name, to_version, strict=True).prompt
        if prompt.is_production:
            return prompt
        raise InvalidStateTransitionError(
            "rollback", prompt.state.value, "Cannot rollback to draft version"
        )

    def _transition(
        self,
        name: str,
        version: int,
        event: PromptEvent,
        strict: bool,
    ) -> TransitionResult:
        prompt = self._require(name, version)
        from_state = prompt.state

        if not can_transition(event, from_state):
            if strict:
                transition_target(event, from_state)
            return TransitionResult(
                prompt=prompt,
                event=event,
                applied=False,
                from_state=from_state,
                to_state=from_state,
                message=f"{name} v{version} is {from_state.value}; {event.value} not applied",
            )

        target = transition_target(event, from_state)
        demoted = self.repository.set_state(prompt, target)
        self.invalidate_cache(name)

        message = f"{event.value} {name} v{version}: {from_state.value} -> {target.value}"
        if demoted is not None:
            message += f" (archived v{demoted.version})"
        logger.info(message)

        return TransitionResult(
            prompt=prompt,
            event=event,
            applied=True,
            from_state=from_state,
            to_state=target,
            message=message,
            demoted=demoted,
        )

    # ============================================================
    # Compilation
    # ============================================================

    @staticmethod
    def compile(text: str, variables: Optional[Mapping[str, Any]] = None) -> str:
        """Substitute variables, leaving unknown tokens verbatim."""
        return compile_template(text, variables)

    @staticmethod
    def compile_with_validation(text: str, variables: Optional[Mapping[str, Any]] = None) -> str:
        """Substitute variables after checking every required one is present.

        Raises:
            MissingVariablesError: Listing all missing root keys.
        """
        return compile_with_validation(text, variables)

    # ============================================================
    # Comparison
    # ============================================================

    def compare_versions(self, name: str, version_a: int, version_b: int) -> Dict[str, Any]:
        """Compare the text of two versions line by line.

        Returns:
            Dictionary with ``from`` and ``to`` versions and a ``diff`` of
            added_lines, removed_lines and changed.
        """
        prompt_a = self._require(name, version_a)
        prompt_b = self._require(name, version_b)

        lines_a = prompt_a.text.splitlines(keepends=True)
        lines_b = prompt_b.text.splitlines(keepends=True)

        return {
            "from": prompt_a,
            "to": prompt_b,
            "diff": {
                "added_lines": [line for line in lines_b if line not in lines_a],
                "removed_lines": [line for line in lines_a if line not in lines_b],
                "changed": prompt_a.text != prompt_b.text,
            },
        }

    # ============================================================
    # Caching
    # ============================================================

    def invalidate_cache(self, name: str, version: Optional[int] = None) -> None:
        self.cache.invalidate(name, version)

    def warm_cache(self, names: Optional[List[str]] = None) -> Dict[str, List[Any]]:
        """Load production versions into the cache.

        Args:
            names: Prompt names to warm. Defaults to the configured critical
                prompts, or every name with a production version.

        Returns:
            Dictionary with ``success`` (names) and ``failed`` (name/error
            dictionaries).
        """
        results: Dict[str, List[Any]] = {"success": [], "failed": []}

        for name in names if names is not None else self.critical_prompt_names():
            try:
                self.fetch(name, state=PromptState.PRODUCTION)
                results["success"].append(name)
            except PromptNotFoundError as e:
                results["failed"].append({"name": name, "error": str(e)})
                logger.error(f"Failed to warm cache for {name}: {e}")

        logger.info(
            f"Cache warming completed: {len(results['success'])} success, "
            f"{len(results['failed'])} failed"
        )
        return results

    def critical_prompt_names(self) -> List[str]:
        if self.settings.critical_prompts:
            return list(self.settings.critical_prompts)
        return self.repository.list_names(PromptState.PRODUCTION)

    def cache_stats(self, name: str) -> Dict[str, Any]:
        return self.cache.stats(name)

    def clear_stats(self) -> None:
        self.cache.clear_stats()

    # ============================================================
    # Import / export
    # ============================================================

    def export_yaml(self, name: str, version: Optional[int] = None) -> str:
        """Export one version, or every version oldest first, as YAML."""
        if version is not None:
            data: Any = self._require(name, version).to_export_dict()
        else:
            prompts = self.versions(name)
            if not prompts:
                raise PromptNotFoundError(f"Prompt '{name}' not found")
            data = [p.to_export_dict() for p in reversed(prompts)]
        return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def import_yaml(self, text: str, created_by: Optional[str] = None) -> List[PromptVersion]:
        """Create draft versions from exported YAML.

        Imported entries get the next free version numbers; their original
        numbers are kept in the commit message when none is present.

        Raises:
            ValidationError: If the document is not a mapping or list of mappings.
        """
        data = yaml.safe_load(text)
        entries = data if isinstance(data, list) else [data]
        if not entries or not all(isinstance(e, dict) for e in entries):
            raise ValidationError(["Import must be a mapping or a list of mappings"])

        created = []
        for entry in entries:
            commit_message = entry.get("commit_message")
            if not commit_message and entry.get("version"):
                commit_message = f"Imported from v{entry['version']}"
            created.append(self.create_version(
                name=entry.get("name") or "",
                text=entry.get("text") or "",
                config=entry.get("config"),
                commit_message=commit_message,
                created_by=created_by or entry.get("created_by"),
            ))
        return created

    # ============================================================
    # Helpers
    # ============================================================

    def _require(self, name: str, version: int) -> PromptVersion:
        prompt = self.repository.get(name, version)
        if prompt is None:
            raise PromptNotFoundError(f"Prompt '{name}' v{version} not found")
        return prompt

    def _load(self, name: str, version: Optional[int], state: str) -> Optional[PromptVersion]:
        if version is not None:
            return self.repository.get(name, version)
        return self.repository.find_by_state(name, PromptState(state))

    def _validated_config(self, config: Any, name: str, text: str) -> Dict[str, Any]:
        """Normalize and validate a config, raising ValidationError on any problem."""
        if isinstance(config, str):
            try:
                config = json.loads(config) if config.strip() else {}
            except ValueError:
                config = {}
        if isinstance(config, dict):
            config = dict(config)

        errors = []
        if not name or not str(name).strip():
            errors.append("name can't be blank")
        if not text or not str(text).strip():
            errors.append("text can't be blank")

        validator = PromptConfigValidator(config, strict=self.settings.config_schema_strict)
        if not validator.valid():
            errors.extend(validator.errors)

        if errors:
            raise ValidationError(errors)
        return config or {}
