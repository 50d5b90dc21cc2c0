"""Utilities for KOH Backup."""

from .files import human_size, purge_directory
from .logging import setup_logging
from .prompts import Chooser, ClickChooser, ScriptedChooser
from .retry import retry

__all__ = [
    "Chooser",
    "ClickChooser",
    "ScriptedChooser",
    "human_size",
    "purge_directory",
    "retry",
    "setup_logging",
]
