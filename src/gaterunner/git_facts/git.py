# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this file.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.PIPE,
    )
    return out.strip()


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Return the full SHA hash of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def resolve_ref(ref: str, cwd: Optional[str | Path] = None) -> str:
    """
    Resolve a branch, tag or SHA to a commit SHA.

    `^{commit}` makes git reject refs that exist but do not point at a commit.
    """
    return _git(["rev-parse", "--verify", f"{ref}^{{commit}}"], cwd=cwd)


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """
    Return the current branch name, or the HEAD SHA when detached.
    """
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if branch == "HEAD":
        return head_sha(cwd=cwd)
    return branch


def clone(repo_url: str, dest: Path) -> Path:
    """Clone `repo_url` into `dest` (which must not exist yet)."""
    _git(["clone", "--quiet", repo_url, str(dest)])
    return dest


def checkout(ref: str, cwd: str | Path) -> None:
    """Check out `ref` in detached mode so branches and SHAs behave the same."""
    _git(["checkout", "--quiet", "--detach", ref], cwd=cwd)
