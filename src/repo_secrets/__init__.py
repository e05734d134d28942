"""
repo-secrets - passphrase-encrypted secrets in a git repository.

Each secret is a file in a shared git repository, encrypted at rest with
AES-256-GCM under a key derived from a single passphrase.

Features:
- list: Show available keys (no decryption needed)
- get: Decrypt and print a secret
- set: Encrypt a secret, commit and push it
- del: Remove a secret, commit and push the removal

Requires: git
"""

__version__ = "0.1.0"
