# checkout.py
from __future__ import annotations

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol

from .errors import TOOL_HINTS, CheckoutError
from .git_facts import git


class SourceCheckoutProvider(Protocol):
    def checkout(self, ref: str) -> Path:
        ...

    def release(self, path: Path) -> None:
        ...


class LocalCheckout:
    """
    Uses an existing working tree as the source of a run.

    When `verify_ref` is set and the tree is a git repository, the ref must
    resolve to a commit; otherwise the tree is taken as-is (local dev runs).
    """

    def __init__(self, path: str | Path = ".", *, verify_ref: bool = False):
        self.path = Path(path)
        self.verify_ref = verify_ref

    def checkout(self, ref: str) -> Path:
        root = self.path.resolve()
        if not root.is_dir():
            raise CheckoutError(f"source directory not found: {root}", details={"ref": ref})
        if self.verify_ref:
            try:
                git.resolve_ref(ref, cwd=root)
            except subprocess.CalledProcessError as e:
                raise CheckoutError(
                    f"ref {ref!r} does not resolve to a commit",
                    details={"stderr": (e.stderr or "").strip()},
                ) from e
            except FileNotFoundError as e:
                raise CheckoutError("git command not found", details={"hint": TOOL_HINTS["git"]}) from e
        return root

    def release(self, path: Path) -> None:
        # the tree belongs to the caller
        return None


class GitCheckout:
    """
    Clones `repo_url` into a fresh <work_dir>/<name>-XXXX/<name> directory
    and checks out the requested ref. Every call gets its own directory, so
    concurrent runs of the same repository never share a checkout.
    """

    def __init__(self, repo_url: str, work_dir: str | Path = ".gaterunner/checkouts", *, name: str | None = None):
        self.repo_url = repo_url
        self.work_dir = Path(work_dir)
        self.name = name or repo_url.rstrip("/").split("/")[-1].replace(".git", "") or "repo"

    def checkout(self, ref: str) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        dest = Path(tempfile.mkdtemp(prefix=f"{self.name}-", dir=self.work_dir)).resolve() / self.name

        try:
            git.clone(self.repo_url, dest)
            git.checkout(ref, cwd=dest)
        except subprocess.CalledProcessError as e:
            self.release(dest)
            raise CheckoutError(
                f"could not check out {ref!r} from {self.repo_url}",
                details={"stderr": (e.stderr or "").strip()},
            ) from e
        except FileNotFoundError as e:
            self.release(dest)
            raise CheckoutError("git command not found", details={"hint": TOOL_HINTS["git"]}) from e
        return dest

    def release(self, path: Path) -> None:
        """Remove a checkout made by this provider, including its mkdtemp parent."""
        path = Path(path).resolve()
        if path.parent.parent != self.work_dir.resolve():
            return
        shutil.rmtree(path.parent, ignore_errors=True)
