"""Exceptions raised by repo-secrets."""


class SecretsError(Exception):
    """Base exception for secrets errors."""
    pass


class ConfigError(SecretsError):
    """Required configuration is missing or invalid.

    Every problem found is kept in ``problems`` so they can be reported
    together instead of one at a time.
    """

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("\n".join(self.problems))


class EnvelopeError(SecretsError):
    """An envelope could not be opened."""
    pass


class DecodeError(EnvelopeError):
    """Envelope text is not valid base64."""
    pass


class FormatError(EnvelopeError):
    """Decoded envelope is too short to hold a salt and nonce."""
    pass


class AuthenticationError(EnvelopeError):
    """Wrong passphrase or tampered ciphertext."""
    pass


class SyncError(SecretsError):
    """A git command failed."""
    pass


class FilesystemError(SecretsError):
    """Local read/write/delete failed."""
    pass


class KeyNotFoundError(FilesystemError):
    """Secret key not found."""
    pass


class InvalidKeyError(SecretsError):
    """Key cannot be mapped to a path inside the store."""
    pass
