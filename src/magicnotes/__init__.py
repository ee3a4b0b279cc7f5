"""
MagicNotes - a personal note-taking core with AI-assisted authoring.

This package implements the note/folder model, view filtering and search,
the password-gated private area, multi-select bulk operations, the per-note
editor session and the AI orchestration layer, exposed as an MCP server.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("magicnotes")
except PackageNotFoundError:
    __version__ = "1.0.0"
