"""Operator interaction.

Every blocking prompt in the workflow is a call on an ``InputProvider``.  The
workflow never touches the terminal directly, so the planner, intake and
runner can be driven by a scripted provider in tests and by
``ClickInputProvider`` at the terminal.
"""

import abc
from typing import Optional

import click

# Named output styles -> click.style keyword arguments
_STYLES = {
    "error": {"fg": "red"},
    "success": {"fg": "green"},
    "warning": {"fg": "yellow"},
    "heading": {"bold": True},
    "dim": {"dim": True},
}

_YES = ("y", "yes")
_NO = ("n", "no")


class InputProvider(abc.ABC):
    """Synchronous operator I/O.

    Subclasses implement ``ask``, ``ask_secret`` and ``tell``; ``confirm`` is
    built on ``ask`` and may be overridden when the UI has a native yes/no
    prompt.
    """

    @abc.abstractmethod
    def ask(self, question: str, default: Optional[str] = None) -> str:
        """Ask a free-text question.  A blank answer returns ``default`` (or ``""``)."""

    @abc.abstractmethod
    def ask_secret(self, question: str) -> str:
        """Ask for a secret without echoing it."""

    @abc.abstractmethod
    def tell(self, message: str, style: Optional[str] = None):
        """Show a message to the operator.  ``style`` is a key of ``_STYLES``."""

    def confirm(self, question: str, default: bool = True) -> bool:
        """Ask a yes/no question, showing the default in the prompt."""
        hint = "Y/n" if default else "y/N"
        while True:
            answer = self.ask(f"{question} [{hint}]").strip().lower()
            if not answer:
                return default
            if answer in _YES:
                return True
            if answer in _NO:
                return False
            self.tell("Please answer y or n.", style="warning")


class ClickInputProvider(InputProvider):
    """Terminal binding built on click prompts."""

    def ask(self, question: str, default: Optional[str] = None) -> str:
        return click.prompt(
            question,
            default=default or "",
            show_default=bool(default),
        ).strip()

    def ask_secret(self, question: str) -> str:
        return click.prompt(question, default="", show_default=False, hide_input=True)

    def confirm(self, question: str, default: bool = True) -> bool:
        return click.confirm(question, default=default)

    def tell(self, message: str, style: Optional[str] = None):
        click.secho(message, **_STYLES.get(style, {}))
