"""Repository data model for Canopy."""

import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

DEFAULT_BASE_BRANCH = "origin/main"


@dataclass(frozen=True)
class Repository:
    """
    A registered git repository.

    Instances are immutable; edits produce a new instance via ``with_changes``
    so the repository list and the selected repository never share mutable state.

    Attributes:
        path: Filesystem path to the repository root
        name: Display name of the repository
        post_create_hook: Shell command run inside each newly created worktree
        base_branch: Ref new worktrees branch from (defaults to origin/main)
        run_command: Long-running command started per worktree on demand
        id: Unique identifier
    """

    path: str
    name: str
    post_create_hook: str | None = None
    base_branch: str | None = None
    run_command: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def effective_base_branch(self) -> str:
        return self.base_branch or DEFAULT_BASE_BRANCH

    @classmethod
    def from_path(cls, path: str) -> "Repository":
        """Create a repository named after the last component of its path."""
        return cls(path=path, name=Path(path).name)

    def with_changes(self, **changes: Any) -> "Repository":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the repository to a dictionary.

        Returns:
            Dict[str, Any]: Serialized repository data
        """
        return {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "post_create_hook": self.post_create_hook,
            "base_branch": self.base_branch,
            "run_command": self.run_command,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Repository":
        """
        Deserialize a repository from a dictionary.

        Args:
            data: Dictionary containing repository data

        Returns:
            Repository: Deserialized repository instance
        """
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            path=data["path"],
            name=data.get("name") or Path(data["path"]).name,
            post_create_hook=data.get("post_create_hook"),
            base_branch=data.get("base_branch"),
            run_command=data.get("run_command"),
        )
