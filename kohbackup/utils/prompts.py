"""Interactive selection for KOH Backup.

Orchestrators never talk to the terminal directly; they ask a ``Chooser``
to pick one of an ordered list of candidates or to read a free-text answer.
``ClickChooser`` drives the terminal, ``ScriptedChooser`` replays canned
answers for tests and automation.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Union

import click

logger = logging.getLogger(__name__)


class Chooser:
    """Selection capability used by the orchestrators."""

    def choose(self, title: str, options: Sequence[str]) -> Optional[int]:
        """
        Select one of ``options``.

        Returns:
            Optional[int]: Zero-based index of the selection, or None when
            the selection was cancelled
        """
        raise NotImplementedError

    def ask(self, question: str) -> str:
        """Read a free-text answer; empty string if none is given."""
        raise NotImplementedError

    def show(self, text: str) -> None:
        """Present a block of text to the operator."""
        raise NotImplementedError


class ClickChooser(Chooser):
    """Numbered-menu chooser on the terminal."""

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts

    def choose(self, title: str, options: Sequence[str]) -> Optional[int]:
        if not options:
            return None

        click.echo(title)
        for number, option in enumerate(options, 1):
            click.echo(f"  {number}) {option}")

        for _attempt in range(self.max_attempts):
            answer = click.prompt(f"Selection [1-{len(options)}]", default="", show_default=False)
            answer = answer.strip()
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return int(answer) - 1
            logger.warning("Invalid selection. Please try again.")

        logger.error("Too many invalid selections (%d), giving up.", self.max_attempts)
        return None

    def ask(self, question: str) -> str:
        return click.prompt(question, default="", show_default=False)

    def show(self, text: str) -> None:
        click.echo(text)


class ScriptedChooser(Chooser):
    """
    Chooser replaying prepared answers.

    Selections may be given as zero-based indices or as option labels;
    ``None`` cancels. Free-text answers are consumed from ``answers``.
    """

    def __init__(self, selections: Iterable[Union[int, str, None]] = (), answers: Iterable[str] = ()):
        self.selections = list(selections)
        self.answers = list(answers)
        self.shown: List[str] = []
        self.asked: List[str] = []

    def choose(self, title: str, options: Sequence[str]) -> Optional[int]:
        if not self.selections:
            return None
        selection = self.selections.pop(0)
        if selection is None:
            return None
        if isinstance(selection, str):
            return list(options).index(selection) if selection in options else None
        return selection if 0 <= selection < len(options) else None

    def ask(self, question: str) -> str:
        self.asked.append(question)
        return self.answers.pop(0) if self.answers else ""

    def show(self, text: str) -> None:
        self.shown.append(text)
