#!/usr/bin/env python3
"""
Exception types for the layout optimization engine.

Every error the engine reports to its callers derives from LayoutEngineError,
so a command surface can catch the whole family in one place.
"""

from typing import Optional


class LayoutEngineError(Exception):
    """Base exception for layout engine errors."""
    pass


class LanguageNotFound(LayoutEngineError):
    """Raised when no corpus data exists for a language."""

    def __init__(self, language: str, data_dir: Optional[str] = None):
        self.language = language
        self.data_dir = data_dir
        where = f" in {data_dir}" if data_dir else ""
        super().__init__(f"No corpus data found for language '{language}'{where}")


class ParseError(LayoutEngineError, ValueError):
    """Raised when layout text cannot be decoded into a layout."""
    pass


class NoCandidatesYet(LayoutEngineError):
    """Raised when candidates are requested before any generation."""

    def __init__(self):
        super().__init__("You haven't generated any layouts yet!")


class IndexOutOfRange(LayoutEngineError, IndexError):
    """Raised when a candidate index is outside the current list."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"That's not a valid index: {index} (only {length} candidates available)")


class LayoutNotFound(LayoutEngineError, KeyError):
    """Raised when a layout name is not present in the store."""

    def __init__(self, name: str, language: Optional[str] = None):
        self.name = name
        self.language = language
        where = f" for language '{language}'" if language else ""
        super().__init__(name)
        self.message = f"Layout '{name}' not found{where}"

    def __str__(self) -> str:
        return self.message


class LayoutIOError(LayoutEngineError, OSError):
    """Raised when persisted data cannot be read or written."""
    pass


class StoreIOError(LayoutIOError):
    """Raised when the layout store cannot be read or written."""
    pass


class CorpusIOError(LayoutIOError):
    """Raised when corpus data exists but cannot be loaded."""
    pass


class SearchCancelled(LayoutEngineError):
    """Raised when a generation call is cancelled before completion."""

    def __init__(self, completed_runs: int = 0):
        self.completed_runs = completed_runs
        super().__init__(f"Search cancelled after {completed_runs} completed runs")
