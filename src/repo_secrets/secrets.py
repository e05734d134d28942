"""Core secrets management functionality."""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from . import envelope
from .errors import (
    EnvelopeError,
    FilesystemError,
    FormatError,
    InvalidKeyError,
    KeyNotFoundError,
    SyncError,
)
from .git import Git, publish

logger = logging.getLogger(__name__)


def validate_key(key: str) -> str:
    """
    Check that a key names a file inside the store.

    Keys are slash-separated relative paths. Absolute paths, empty, "." or
    ".." segments and anything under .git are rejected.
    """
    if not key:
        raise InvalidKeyError("empty key")

    if key.startswith("/") or "\\" in key:
        raise InvalidKeyError(f"invalid key {key!r}: must be a relative slash-separated path")

    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise InvalidKeyError(f"invalid key {key!r}: empty, '.' or '..' segment")

    if segments[0] == ".git":
        raise InvalidKeyError(f"invalid key {key!r}: reserved for git")

    return key


def key_path(store_dir: Path, key: str) -> Path:
    """Map a key to its file in the store."""
    return Path(store_dir, *validate_key(key).split("/"))


def list_keys(store_dir: Path) -> list[str]:
    """List all secret keys (no decryption needed)."""
    store_dir = Path(store_dir)
    keys = []

    def fail(error):
        raise FilesystemError(f"failed to list {error.filename!r}: {error.strerror}") from error

    for root, dirs, files in os.walk(store_dir, onerror=fail):
        # Git bookkeeping is not part of the store
        if ".git" in dirs:
            dirs.remove(".git")
        for name in files:
            path = Path(root, name)
            if path.is_file() and not path.is_symlink():
                keys.append(path.relative_to(store_dir).as_posix())

    return sorted(keys)


def get_secret(store_dir: Path, key: str, passphrase: str) -> str:
    """Decrypt and return a secret value."""
    path = key_path(store_dir, key)

    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise KeyNotFoundError(f"failed to read file {str(path)!r}: key not found: {key}") from e
    except OSError as e:
        raise FilesystemError(f"failed to read file {str(path)!r}: {e}") from e

    try:
        value = envelope.decrypt(data, passphrase)
    except EnvelopeError as e:
        raise type(e)(f"failed to decrypt {key!r}: {e}") from e

    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError(f"failed to decode {key!r}: value is not UTF-8 text") from e


def _unchanged(path: Path, value: str, passphrase: str) -> bool:
    """True if the stored envelope already holds this value."""
    if not path.is_file():
        return False
    try:
        return envelope.decrypt(path.read_bytes(), passphrase) == value.encode("utf-8")
    except (OSError, EnvelopeError):
        return False


def set_secret(store_dir: Path, key: str, value: str, passphrase: str, git: Git = None) -> bool:
    """
    Encrypt a secret, then commit and push it.

    Returns True if a commit was pushed. Setting a key to the value it
    already holds leaves the file untouched and publishes nothing.
    """
    path = key_path(store_dir, key)

    if _unchanged(path, value, passphrase):
        logger.debug("%s already holds this value", key)
    else:
        # Encrypt before touching the file so a failure leaves no partial envelope
        data = envelope.encrypt(value, passphrase)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to create directory {str(path.parent)!r}: {e}") from e

        temp_file = None
        try:
            # mkstemp never reuses an existing name, so no other key is touched
            fd, name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
            temp_file = Path(name)
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(data)
            os.replace(temp_file, path)
        except OSError as e:
            raise FilesystemError(f"failed to write {key!r} to {str(path)!r}: {e}") from e
        finally:
            # Clean up temp file if it still exists
            if temp_file is not None and temp_file.exists():
                temp_file.unlink()

    try:
        return publish(store_dir, key, f'set "{key}"', git)
    except SyncError as e:
        raise SyncError(f"failed to publish {key!r}: {e}") from e


def delete_secret(store_dir: Path, key: str, git: Git = None) -> bool:
    """
    Delete a secret, then commit and push the removal.

    Deleting a missing key is not an error; the publish step still runs and
    finds nothing to commit. Returns True if a commit was pushed.
    """
    path = key_path(store_dir, key)

    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        raise FilesystemError(f"failed to delete {key!r} at {str(path)!r}: {e}") from e

    try:
        return publish(store_dir, key, f'del "{key}"', git)
    except SyncError as e:
        raise SyncError(f"failed to publish {key!r}: {e}") from e
