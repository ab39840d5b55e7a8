"""Abstract interface for prompt version storage."""

from abc import ABC, abstractmethod
from typing import List, Optional

from observ.models.prompt import PromptState, PromptVersion

class IPromptRepository(ABC):
    """Abstract interface for persisting prompt versions.

    Implementations must enforce that (name, version) is unique and that at
    most one version per name is in production. Implementations include:
    - SQLite repository (default)
    - In-memory repository (for testing)
    """

    @abstractmethod
    def next_version_number(self, name: str) -> int:
        """Get the version number the next version of ``name`` will receive.

        Returns:
            Highest existing version + 1, or 1 if the name is new.
        """
        pass

    @abstractmethod
    def insert(self, prompt: PromptVersion) -> PromptVersion:
        """Persist a new prompt version and assign its id.

        Raises:
            DuplicateRecordError: If (name, version) already exists, or the
                prompt is in production while another version is.
        """
        pass

    @abstractmethod
    def get(self, name: str, version: int) -> Optional[PromptVersion]:
        """Get a specific version, None if it does not exist."""
        pass

    @abstractmethod
    def find_by_state(self, name: str, state: PromptState) -> Optional[PromptVersion]:
        """Get the highest version of ``name`` in ``state``, None if there is none."""
        pass

    @abstractmethod
    def list_versions(self, name: str) -> List[PromptVersion]:
        """List all versions of a prompt, newest first."""
        pass

    @abstractmethod
    def list_names(self, state: Optional[PromptState] = None) -> List[str]:
        """List distinct prompt names, optionally only those with a version in ``state``."""
        pass

    @abstractmethod
    def update_content(self, prompt: PromptVersion) -> PromptVersion:
        """Save the text, config and commit message of an existing version."""
        pass

    @abstractmethod
    def set_state(
        self,
        prompt: PromptVersion,
        state: PromptState,
    ) -> Optional[PromptVersion]:
        """Change the state of a version atomically.

        When ``state`` is production, any other production version of the
        same name is archived within the same transaction.

        Returns:
            The version that was archived to make room, if any.
        """
        pass

    @abstractmethod
    def delete(self, name: str, version: int) -> bool:
        """Delete a version.

        Returns:
            True if a row was deleted.
        """
        pass
