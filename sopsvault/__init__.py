"""
sopsvault — a directory of sops-encrypted files used as a hierarchical secret store.

Secrets are addressed by their path inside a vault ("apps/api/db"), or by
their last segment ("db") while that is unique. Encryption, decryption and
field updates are delegated to the sops binary.
"""

__version__ = "0.1.0"
