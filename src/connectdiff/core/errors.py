"""
Error taxonomy for connect-diff.

Every error here is fatal to the whole run: the CLI logs the message and
exits with `exit_code`. There is no local retry path.
"""

from __future__ import annotations


class ConnectDiffError(Exception):
    """Base error for all reconciliation failures."""

    exit_code = 1


class MissingOrEmptyInput(ConnectDiffError):
    """A required manifest or content file is absent or empty."""

    def __init__(self, path: str, reason: str = "missing") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Required input is {reason}: {path}")


class DirectoryConflict(ConnectDiffError):
    """The output directory already exists and force was not requested."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Output directory already exists: {path} (use --force to overwrite)")


class EncodingUnsupported(ConnectDiffError):
    """The host cannot encode the reference non-ASCII character as UTF-8."""


class AmbiguousMatch(ConnectDiffError):
    """A name occurs more than once within one snapshot and category."""

    def __init__(self, category: str, name: str, alias: str, ids) -> None:
        self.category = category
        self.name = name
        self.alias = alias
        self.ids = tuple(ids)
        super().__init__(
            f"Ambiguous {category} name {name!r} in snapshot '{alias}': ids {', '.join(self.ids)}"
        )


class RuleError(ConnectDiffError):
    """Rule script cannot be written or parsed safely."""


class ConfigError(ConnectDiffError):
    """Raised when runtime configuration cannot be resolved."""
