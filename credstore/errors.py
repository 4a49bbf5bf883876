"""
Error taxonomy for credstore.

Every failure surfaced to the operator derives from CredsError so the CLI can
report it at the command boundary and exit non-zero. Nothing is retried.
"""

from __future__ import annotations


class CredsError(Exception):
    """Base class for all credstore errors."""


class ArgumentError(CredsError, ValueError):
    """Malformed command input: bad flag, range, regex, key or realm type."""


class RepositoryError(CredsError):
    """The credential store rejected an operation."""


class StoreUnavailableError(RepositoryError, ConnectionError):
    """The credential store cannot be reached."""


class CredentialValidationError(RepositoryError):
    """A credential could not be created (constraint violation)."""


class ArtifactIOError(CredsError, OSError):
    """A file the command reads or writes is inaccessible."""
