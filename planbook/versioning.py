from __future__ import annotations

from dataclasses import dataclass, field
import subprocess
from pathlib import Path

from .errors import PersistenceError
from .locks import RepositoryLock


LOCK_FILENAME = ".planbook.lock"
_LOG_FIELD_SEP = "\x1f"
_LOG_FORMAT = _LOG_FIELD_SEP.join(["%H", "%an", "%ae", "%aI", "%s"])


def _run_git(repo_root: Path, *args: str, timeout_s: float = 15.0) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout_s,
        )
    except Exception:
        return subprocess.CompletedProcess(args=["git", *args], returncode=124, stdout="", stderr="git invocation failed")


def _detail(proc: subprocess.CompletedProcess[str]) -> str:
    return " ".join(proc.stderr.strip().split()) or f"exit={proc.returncode}"


@dataclass(frozen=True)
class AuthorConfiguration:
    name: str
    email: str


@dataclass(frozen=True)
class CommitInfo:
    commit: str
    author: str
    email: str
    timestamp: str
    message: str


@dataclass(frozen=True)
class RepositoryStatus:
    staged: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.staged or self.modified or self.deleted or self.untracked)


def is_git_repo(repo_root: Path) -> bool:
    proc = _run_git(repo_root, "rev-parse", "--is-inside-work-tree")
    return proc.returncode == 0 and proc.stdout.strip() == "true"


def git_identity_status(repo_root: Path) -> tuple[bool, str]:
    if not is_git_repo(repo_root):
        return True, "git repo not initialized"

    name_proc = _run_git(repo_root, "config", "--get", "user.name")
    email_proc = _run_git(repo_root, "config", "--get", "user.email")
    name = name_proc.stdout.strip() if name_proc.returncode == 0 else ""
    email = email_proc.stdout.strip() if email_proc.returncode == 0 else ""

    if name and email:
        return True, f"{name} <{email}>"
    if not name and not email:
        return False, "git user.name/user.email are not configured"
    if not name:
        return False, "git user.name is not configured"
    return False, "git user.email is not configured"


def ensure_local_git_identity(repo_root: Path, author: AuthorConfiguration) -> tuple[bool, str, bool]:
    """Configure a repo-local identity only where none is visible yet.

    Returns (ok, detail, changed).
    """

    ok, detail = git_identity_status(repo_root)
    if ok:
        return True, detail, False
    set_name = _run_git(repo_root, "config", "user.name", author.name)
    if set_name.returncode != 0:
        return False, f"failed to set local git user.name: {_detail(set_name)}", False
    set_email = _run_git(repo_root, "config", "user.email", author.email)
    if set_email.returncode != 0:
        return False, f"failed to set local git user.email: {_detail(set_email)}", False
    ok2, detail2 = git_identity_status(repo_root)
    return ok2, detail2, True


class Repository:
    """A git working tree used as the durability and audit layer for plan data."""

    def __init__(self, path: Path, author: AuthorConfiguration) -> None:
        self._path = path
        self.author = author
        self._lock = RepositoryLock(path / ".git" / LOCK_FILENAME)

    @classmethod
    def open(cls, path: Path, author: AuthorConfiguration, *, ignored: tuple[str, ...] = ()) -> "Repository":
        """Open the repository at `path`, running `git init` first if needed."""

        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"failed to create repository directory {path}: {exc}") from exc
        if not (path / ".git").exists():
            init = _run_git(path, "init", "-q")
            if init.returncode != 0:
                raise PersistenceError(f"git init failed: {_detail(init)}")
        ok, detail, _changed = ensure_local_git_identity(path, author)
        if not ok:
            raise PersistenceError(detail)
        repo = cls(path, author)
        if ignored:
            repo.ensure_ignored(ignored)
        return repo

    @property
    def path(self) -> Path:
        return self._path

    def relative(self, path: Path | str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            return candidate.as_posix()
        try:
            return candidate.resolve().relative_to(self._path.resolve()).as_posix()
        except ValueError as exc:
            raise PersistenceError(f"path {candidate} is outside repository {self._path}") from exc

    def ensure_ignored(self, names: tuple[str, ...]) -> None:
        """Keep `names` out of version control via the repo-local exclude file.

        The exclude file lives inside .git, so it never shows up as an
        untracked change itself.
        """

        exclude = self._path / ".git" / "info" / "exclude"
        try:
            existing = exclude.read_text(encoding="utf-8").splitlines() if exclude.exists() else []
        except OSError as exc:
            raise PersistenceError(f"failed to read {exclude}: {exc}") from exc
        missing = [name for name in names if name not in existing]
        if not missing:
            return
        lines = [line for line in existing if line.strip()] + missing
        try:
            exclude.parent.mkdir(parents=True, exist_ok=True)
            exclude.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"failed to write {exclude}: {exc}") from exc

    def begin(self) -> "Transaction":
        try:
            self._lock.acquire()
        except RuntimeError as exc:
            raise PersistenceError(str(exc)) from exc
        return Transaction(self)

    def head(self) -> str:
        proc = _run_git(self._path, "rev-parse", "--verify", "-q", "HEAD")
        if proc.returncode != 0:
            return ""
        return proc.stdout.strip()

    def status(self) -> RepositoryStatus:
        proc = _run_git(self._path, "status", "--porcelain", "--untracked-files=all")
        if proc.returncode != 0:
            raise PersistenceError(f"git status failed: {_detail(proc)}")
        staged: list[str] = []
        modified: list[str] = []
        deleted: list[str] = []
        untracked: list[str] = []
        for line in proc.stdout.splitlines():
            if len(line) < 4:
                continue
            index, worktree, name = line[0], line[1], line[3:]
            if " -> " in name:
                name = name.split(" -> ", 1)[1]
            name = name.strip('"')
            if index == "?" and worktree == "?":
                untracked.append(name)
                continue
            if index in "MADRC":
                staged.append(name)
            if worktree == "M":
                modified.append(name)
            if worktree == "D" or index == "D":
                deleted.append(name)
        return RepositoryStatus(staged=staged, modified=modified, deleted=deleted, untracked=untracked)

    def history(self, limit: int = 0) -> list[CommitInfo]:
        return self._log(limit)

    def file_history(self, path: Path | str, limit: int = 0) -> list[CommitInfo]:
        return self._log(limit, self.relative(path))

    def diff(self, from_commit: str, to_commit: str) -> str:
        proc = _run_git(self._path, "diff", from_commit, to_commit)
        if proc.returncode != 0:
            raise PersistenceError(f"git diff {from_commit}..{to_commit} failed: {_detail(proc)}")
        return proc.stdout

    def _log(self, limit: int, path: str = "") -> list[CommitInfo]:
        if not self.head():
            return []
        args = ["log", f"--format={_LOG_FORMAT}"]
        if limit > 0:
            args.append(f"-n{int(limit)}")
        if path:
            args.extend(["--", path])
        proc = _run_git(self._path, *args)
        if proc.returncode != 0:
            raise PersistenceError(f"git log failed: {_detail(proc)}")
        commits: list[CommitInfo] = []
        for line in proc.stdout.splitlines():
            parts = line.split(_LOG_FIELD_SEP)
            if len(parts) != 5:
                continue
            commits.append(CommitInfo(commit=parts[0], author=parts[1], email=parts[2], timestamp=parts[3], message=parts[4]))
        return commits


class Transaction:
    """One Begin→Stage→Commit unit. Holds the repository lock until finalized."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo
        self._staged: list[str] = []
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._finalized:
            self.cancel()

    def stage(self, paths: list[Path | str]) -> None:
        self._require_open()
        rel_paths = [self._repo.relative(path) for path in paths]
        root = self._repo.path
        present = [rel for rel in rel_paths if (root / rel).exists()]
        missing = [rel for rel in rel_paths if not (root / rel).exists()]
        if present:
            add = _run_git(root, "add", "--", *present)
            if add.returncode != 0:
                raise PersistenceError(f"git add failed: {_detail(add)}")
        if missing:
            rm = _run_git(root, "rm", "--cached", "-q", "--ignore-unmatch", "--", *missing)
            if rm.returncode != 0:
                raise PersistenceError(f"git rm failed: {_detail(rm)}")
        self._staged.extend(rel for rel in rel_paths if rel not in self._staged)

    def commit(self, message: str) -> str:
        """Commit staged changes and return the commit id.

        With nothing staged (e.g. a byte-identical rewrite) no commit is made
        and the current HEAD is returned.
        """

        self._require_open()
        root = self._repo.path
        try:
            staged = _run_git(root, "diff", "--cached", "--quiet")
            if staged.returncode == 0:
                return self._repo.head()
            if staged.returncode != 1:
                raise PersistenceError(f"git staged-diff failed: {_detail(staged)}")
            author = f"{self._repo.author.name} <{self._repo.author.email}>"
            commit = _run_git(root, "commit", "-q", "--no-verify", f"--author={author}", "-m", message)
            if commit.returncode != 0:
                raise PersistenceError(f"git commit failed: {_detail(commit)}")
            return self._repo.head()
        except PersistenceError:
            self._unstage()
            raise
        finally:
            self._finish()

    def cancel(self) -> None:
        if self._finalized:
            return
        try:
            self._unstage()
        finally:
            self._finish()

    def _unstage(self) -> None:
        if not self._staged:
            return
        root = self._repo.path
        if self._repo.head():
            _run_git(root, "reset", "-q", "HEAD", "--", *self._staged)
        else:
            _run_git(root, "rm", "--cached", "-q", "--ignore-unmatch", "--", *self._staged)
        self._staged.clear()

    def _finish(self) -> None:
        self._finalized = True
        self._repo._lock.release()

    def _require_open(self) -> None:
        if self._finalized:
            raise PersistenceError("transaction already finalized")
