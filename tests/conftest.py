"""Shared fixtures for repo-secrets tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from repo_secrets.errors import SyncError
from repo_secrets.git import Git


class FakeGit(Git):
    """
    Records git commands instead of running them.

    Keeps just enough state to behave like git for the sync layer: an index
    filled by add/rm, a HEAD snapshot updated by commit, and a push counter.
    Steps listed in ``fail`` raise SyncError the way a failing git would.
    """

    def __init__(self, fail=()):
        super().__init__()
        self.commands = []
        self.fail = set(fail)
        self.index = {}
        self.head = {}
        self.commits = []
        self.pushes = 0

    def track(self, root, *keys):
        """Pretend existing files are already committed and pushed."""
        for key in keys:
            self.index[key] = Path(root, key).read_bytes()
        self.head = dict(self.index)

    def _run(self, step, args):
        self.commands.append([self.binary, *args])
        if step in self.fail:
            raise SyncError(f"git {step} failed: simulated failure")

        if step == "version":
            return "git version 2.45.0\n"
        if step == "clone":
            path = Path(args[-1])
            (path / ".git").mkdir(parents=True)
        elif step == "add":
            root, rel = Path(args[1]), args[-1]
            self.index[rel] = (root / rel).read_bytes()
        elif step == "rm":
            rel = args[-1]
            for key in [k for k in self.index if k == rel or k.startswith(rel + "/")]:
                del self.index[key]
        elif step == "status":
            changed = sorted(
                key for key in set(self.index) | set(self.head)
                if self.index.get(key) != self.head.get(key)
            )
            return "".join(f"{key}\n" for key in changed)
        elif step == "commit":
            self.head = dict(self.index)
            self.commits.append(args[-1])
        elif step == "push":
            self.pushes += 1
        return ""


def write_key(directory, key, value):
    path = Path(directory, key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(value)


def read_key(directory, key):
    return Path(directory, key).read_text()


@pytest.fixture
def fake_git():
    return FakeGit()


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(*args, cwd=None):
    """Run real git for test setup."""
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    """Isolate real git from the user's configuration."""
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        "[user]\n"
        "\tname = Test User\n"
        "\temail = test@example.com\n"
        "[commit]\n"
        "\tgpgsign = false\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")


@pytest.fixture
def remote(tmp_path, git_env):
    """A bare repository with one commit on main, usable as the store remote."""
    bare = tmp_path / "remote.git"
    seed = tmp_path / "seed"

    git("init", "--quiet", "--bare", str(bare))
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=bare)

    git("init", "--quiet", str(seed))
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    (seed / "README").write_text("secret store\n")
    git("add", "README", cwd=seed)
    git("commit", "--quiet", "-m", "init", cwd=seed)
    git("push", "--quiet", str(bare), "main:main", cwd=seed)

    return bare
