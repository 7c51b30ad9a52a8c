"""Version-control collaborator backed by the git CLI.

Every failing git command raises `VersionControlError` carrying the command,
exit code and output, so the turn that issued it aborts.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from patchpilot_contracts.checkpoint import CommitInfo

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


class VersionControlError(RuntimeError):
    """Raised when a version-control operation fails."""

    code = "vcs_error"


class VersionControl(Protocol):
    def current_branch(self) -> str:
        ...

    def head_commit(self) -> str:
        ...

    def create_and_checkout(self, name: str) -> None:
        ...

    def checkout(self, name: str) -> None:
        ...

    def diff(self) -> str:
        ...

    def commit_all(self, message: str) -> str:
        ...

    def reset_hard(self, commit_id: str) -> None:
        ...

    def unstage(self) -> None:
        ...

    def squash_merge_into(self, target_branch: str, message: str, *, source_branch: str) -> str:
        ...

    def commits_since(self, commit_id: str) -> list[CommitInfo]:
        ...

    def delete_branch(self, name: str) -> None:
        ...


def run_git(args: list[str], cwd: str | Path) -> subprocess.CompletedProcess[str]:
    """Run a git command without raising on non-zero exit."""

    cmd = ["git", *args]
    try:
        return subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True, check=False)
    except OSError as e:
        raise VersionControlError(f"Failed to run {' '.join(cmd)}: {e}") from e


class GitRepository:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()
        self._identity: list[str] | None = None

    def _run(self, *args: str) -> str:
        p = run_git(list(args), self.root)
        if p.returncode != 0:
            error_msg = (
                f"Command failed: git {' '.join(args)}\n"
                f"Exit code: {p.returncode}\n"
                f"STDOUT:\n{p.stdout}\n"
                f"STDERR:\n{p.stderr}"
            )
            logger.error("vcs.command failed args=%s exit=%s", args[:2], p.returncode)
            raise VersionControlError(error_msg)
        return p.stdout.strip()

    def _identity_args(self) -> list[str]:
        """Fallback committer identity for repositories without one configured."""

        if self._identity is None:
            configured = run_git(["config", "user.email"], self.root).returncode == 0
            self._identity = [] if configured else ["-c", "user.name=patchpilot", "-c", "user.email=patchpilot@localhost"]
        return self._identity

    def current_branch(self) -> str:
        name = self._run("rev-parse", "--abbrev-ref", "HEAD")
        if not name or name == "HEAD":
            raise VersionControlError("Could not determine current branch (detached HEAD?)")
        return name

    def head_commit(self) -> str:
        return self._run("rev-parse", "HEAD")

    def create_and_checkout(self, name: str) -> None:
        self._run("checkout", "-b", name)
        logger.info("vcs.branch created name=%s", name)

    def checkout(self, name: str) -> None:
        self._run("checkout", name)

    def is_clean(self) -> bool:
        return self._run("status", "--porcelain") == ""

    def diff(self) -> str:
        # Intent-to-add makes new files show up in the diff without staging content.
        self._run("add", "--all", "--intent-to-add")
        return self._run("diff", "HEAD")

    def commit_all(self, message: str) -> str:
        self._run("add", "--all")
        staged = run_git(["diff", "--cached", "--quiet"], self.root)
        if staged.returncode == 0:
            raise VersionControlError("Nothing to commit: working tree matches HEAD")
        self._run(*self._identity_args(), "commit", "-m", message)
        commit_id = self.head_commit()
        logger.info("vcs.commit commit_id=%s", commit_id)
        return commit_id

    def reset_hard(self, commit_id: str) -> None:
        self._run("reset", "--hard", commit_id)
        logger.info("vcs.reset commit_id=%s", commit_id)

    def unstage(self) -> None:
        """Reset the index to HEAD, leaving the working tree as it is."""

        self._run("reset", "-q", "HEAD")
        logger.debug("vcs.unstage")

    def squash_merge_into(self, target_branch: str, message: str, *, source_branch: str) -> str:
        if not self.is_clean():
            raise VersionControlError("Working tree is not clean. Commit or discard changes first.")
        self._run("checkout", target_branch)
        self._run("merge", "--squash", source_branch)
        self._run(*self._identity_args(), "commit", "-m", message)
        merged = self.head_commit()
        logger.info("vcs.squash_merge source=%s target=%s commit_id=%s", source_branch, target_branch, merged)
        return merged

    def commits_since(self, commit_id: str) -> list[CommitInfo]:
        out = self._run("log", "--reverse", f"--format=%H{_FIELD_SEP}%B{_RECORD_SEP}", f"{commit_id}..HEAD")
        commits: list[CommitInfo] = []
        for record in out.split(_RECORD_SEP):
            record = record.strip()
            if not record:
                continue
            sha, _, body = record.partition(_FIELD_SEP)
            commits.append(CommitInfo(commit_id=sha.strip(), message=body.strip()))
        return commits

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)
        logger.info("vcs.branch deleted name=%s", name)
