"""
CLI Entry Adapter.

Responsibility:
- Receive user input from terminal
- Normalize to EntryRequest contract
- Render prompts and progress notices pushed by the orchestrator
- NO planning, NO capability access
"""

import uuid

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from shared.models import EntryRequest, UserPrompt


class CLIAdapter:
    """Command-line entry adapter."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id or str(uuid.uuid4())[:8]

    def read_input(self, raw_input: str) -> EntryRequest:
        """Normalize raw CLI input to EntryRequest."""
        return EntryRequest(
            session_id=self.session_id,
            input_text=raw_input.strip(),
            metadata={"source": "cli"},
        )


class ConsoleChannel:
    """UserChannel that prints to a rich console; replies arrive via the input loop."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def send_prompt(self, prompt: UserPrompt) -> None:
        if prompt.kind == "confirmation":
            body = Text(prompt.text)
            body.append("\n\nType 'yes' to confirm or anything else to cancel.", style="dim")
            self.console.print(Panel(body, title="Confirmation", border_style="yellow", box=box.ROUNDED))
            return
        self.console.print(Panel(Text(prompt.text), title="Input needed", border_style="magenta", box=box.ROUNDED))

    async def notify(self, session_id: str, text: str) -> None:
        self.console.print(Text(text, style="dim"))
