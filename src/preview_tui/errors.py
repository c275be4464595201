"""Exceptions surfaced to the user."""

from __future__ import annotations


class PreviewError(RuntimeError):
    """Base class for problems that abort a preview session."""


class MissingPrerequisiteError(PreviewError):
    """The environment lacks something the session cannot start without."""
