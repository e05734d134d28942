"""Git transport and repository synchronization."""

import logging
import re
import subprocess
from pathlib import Path
from urllib.parse import urlsplit

from .errors import SyncError

logger = logging.getLogger(__name__)


class Git:
    """
    Runs git commands for the secret store.

    Every method maps to one git invocation. A non-zero exit status (or a
    missing binary) raises SyncError naming the failing step, with git's own
    error output as the message.
    """

    def __init__(self, binary: str = "git"):
        self.binary = binary

    def _run(self, step: str, args: list[str]) -> str:
        cmd = [self.binary, *args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SyncError(f"git {step} failed: {e}") from e

        if result.returncode != 0:
            detail = (
                result.stderr.strip()
                or result.stdout.strip()
                or f"exit status {result.returncode}"
            )
            raise SyncError(f"git {step} failed: {detail}")

        return result.stdout

    def version(self) -> str:
        return self._run("version", ["--version"]).strip()

    def clone(self, url: str, path: Path) -> None:
        logger.debug("git clone %s into %s", redact_url(url), path)
        self._run("clone", ["clone", "--quiet", url, str(path)])

    def pull_rebase(self, path: Path) -> None:
        logger.debug("git pull --rebase in %s", path)
        self._run("pull", ["-C", str(path), "pull", "--quiet", "--rebase"])

    def add(self, path: Path, relative: str) -> None:
        self._run("add", ["-C", str(path), "add", "--", relative])

    def remove_cached(self, path: Path, relative: str) -> None:
        """Stage the removal of a path that is gone from the working tree."""
        self._run(
            "rm",
            ["-C", str(path), "rm", "-r", "--quiet", "--cached",
             "--ignore-unmatch", "--", relative],
        )

    def staged_changes(self, path: Path) -> list[str]:
        """Paths whose staged content differs from the last commit."""
        out = self._run("status", ["-C", str(path), "diff", "--cached", "--name-only"])
        return [line for line in out.splitlines() if line]

    def commit(self, path: Path, message: str) -> None:
        logger.debug("git commit in %s: %s", path, message)
        self._run("commit", ["-C", str(path), "commit", "--quiet", "-m", message])

    def push(self, path: Path) -> None:
        logger.debug("git push from %s", path)
        self._run("push", ["-C", str(path), "push", "--quiet"])


def redact_url(url: str) -> str:
    """Hide credentials embedded in a remote URL."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return parts._replace(netloc=netloc).geturl()


def clone_dir(cache_dir: Path, url: str) -> Path:
    """
    Local clone location for a remote URL.

    Handles scheme URLs (https://host/org/repo.git), scp-style remotes
    (git@host:org/repo.git) and local paths. Credentials, the scheme and a
    trailing .git are dropped; the rest becomes nested directories so two
    remotes never share a clone.
    """
    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        name = f"{parts.hostname or ''}/{parts.port or ''}/{parts.path}"
    else:
        # scp-style user@host:path, or a plain local path
        name = url.rsplit("@", 1)[-1] if ":" in url else url

    name = name.rstrip("/\\")
    if name.endswith(".git"):
        name = name[:-4]

    segments = [
        re.sub(r"[^A-Za-z0-9._-]", "_", segment)
        for segment in re.split(r"[/:\\]+", name)
        if segment not in ("", ".", "..")
    ]
    return Path(cache_dir, *segments) if segments else Path(cache_dir, "default")


def prepare(remote_url: str, cache_dir: Path, git: Git = None) -> Path:
    """
    Return an up-to-date local clone of the secret store.

    Clones on first use; afterwards rebases local commits onto the remote
    tip. A failed rebase is reported, never resolved: the clone is left in
    whatever state git left it.
    """
    git = git or Git()
    path = clone_dir(Path(cache_dir).expanduser(), remote_url).resolve()

    try:
        if (path / ".git").exists():
            git.pull_rebase(path)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            git.clone(remote_url, path)
    except SyncError as e:
        raise SyncError(f"failed to fetch repository: {e}") from e
    except OSError as e:
        raise SyncError(f"failed to create cache directory {str(path.parent)!r}: {e}") from e

    return path


def publish(local_dir: Path, changed_path: str, message: str, git: Git = None) -> bool:
    """
    Commit and push a single changed path.

    Only ``changed_path`` is staged. If that leaves nothing to commit the
    call is a no-op and returns False; otherwise the change is committed
    with ``message``, pushed, and True is returned.
    """
    git = git or Git()
    local_dir = Path(local_dir)

    if (local_dir / changed_path).exists():
        git.add(local_dir, changed_path)
    else:
        git.remove_cached(local_dir, changed_path)

    if not git.staged_changes(local_dir):
        logger.debug("nothing to commit for %s", changed_path)
        return False

    git.commit(local_dir, message)
    git.push(local_dir)
    return True
