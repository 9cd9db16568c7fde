"""Git access helpers: pygit2 for reads, the Git CLI for anything that writes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pygit2


@dataclass
class GitCommit:
    """Represents a git commit."""

    oid: str
    message: str
    author_name: str
    date: int

    @property
    def subject(self) -> str:
        return self.message.splitlines()[0] if self.message else ""

    @property
    def short_oid(self) -> str:
        return self.oid[:12]


def discover_root(path: Path | str) -> Optional[Path]:
    """Return the work-tree root containing ``path``, or ``None`` outside a repository."""
    try:
        found = pygit2.discover_repository(str(path))
        if not found:
            return None
        repo = pygit2.Repository(found)
    except pygit2.GitError:
        return None
    if repo.is_bare or not repo.workdir:
        return None
    return Path(repo.workdir).resolve()


class GitRepository:
    """
    High-level API for the git operations a build driver needs.

    - READ operations use pygit2 (HEAD inspection, status).
    - WRITE operations are only described as Git CLI commands; the caller
      runs them through its command runner so they are traced and can be
      recorded in dry runs.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).resolve()
        self._repo: Optional[pygit2.Repository] = None

    def open(self) -> None:
        """Opens the repository. Raises exception if not found."""
        try:
            self._repo = pygit2.Repository(str(self.path))
        except pygit2.GitError as e:
            raise RuntimeError(f"Failed to open repository at {self.path}: {e}")

    @property
    def repo(self) -> pygit2.Repository:
        if self._repo is None:
            self.open()
        return self._repo  # type: ignore

    @property
    def is_valid(self) -> bool:
        if not self.path.exists():
            return False
        try:
            self.open()
            return True
        except RuntimeError:
            return False

    # --- Inspection (pygit2) ---

    def get_head_commit(self) -> Optional[GitCommit]:
        """Returns HEAD as a :class:`GitCommit`, or ``None`` for an unborn HEAD."""
        try:
            commit = self.repo.head.peel(pygit2.Commit)
        except (pygit2.GitError, KeyError):
            return None
        return GitCommit(
            oid=str(commit.id),
            message=commit.message,
            author_name=commit.author.name,
            date=commit.commit_time,
        )

    def get_head_branch(self) -> Optional[str]:
        """Returns the current branch name, or None if detached HEAD."""
        try:
            if self.repo.head_is_detached:
                return None
            return self.repo.head.shorthand
        except pygit2.GitError:
            return None

    def untracked_paths(self) -> List[str]:
        """Paths git reports as untracked (ignored files excluded)."""
        status = self.repo.status(untracked_files="all")
        return sorted(
            path for path, flags in status.items() if flags & pygit2.GIT_STATUS_WT_NEW
        )

    # --- CLI ---

    def clean_command(self) -> List[str]:
        """Command removing every untracked and ignored file, directories included."""
        return ["git", "clean", "-q", "-f", "-d", "-x"]


__all__ = ["GitCommit", "GitRepository", "discover_root"]
