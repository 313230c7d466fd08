"""
Interactive operator prompts.

The auth flows never talk to the terminal directly; they receive a Prompter so
tests can answer questions without a TTY.
"""

import logging
from typing import Protocol, runtime_checkable

from prompt_toolkit import PromptSession
from prompt_toolkit.shortcuts import radiolist_dialog

logger = logging.getLogger(__name__)


@runtime_checkable
class Prompter(Protocol):
    async def ask(self, label: str, secret: bool = False) -> str:
        """Ask for a single line of input, masked when ``secret`` is set."""
        ...

    async def choose(self, question: str, choices: list[tuple[str, str]]) -> str | None:
        """Let the operator pick one of ``(value, note)`` choices, None when cancelled."""
        ...


class TerminalPrompter:
    """Prompter backed by prompt_toolkit."""

    def __init__(self, session: PromptSession | None = None):
        self.session = session or PromptSession()

    async def ask(self, label: str, secret: bool = False) -> str:
        return await self.session.prompt_async(f"{label}: ", is_password=secret)

    async def choose(self, question: str, choices: list[tuple[str, str]]) -> str | None:
        dialog = radiolist_dialog(
            title="coyote",
            text=question,
            values=[(value, f"{value}  ({note})") for value, note in choices],
        )
        return await dialog.run_async()
