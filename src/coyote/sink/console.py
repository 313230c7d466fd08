"""Console rendering of received messages."""

from rich.console import Console
from rich.markup import escape

from coyote.models import Delivery

FIELDS = (
    ("Exchange", "exchange"),
    ("Routing-key", "routing_key"),
    ("Correlation-id", "correlation_id"),
    ("Reply-to", "reply_to"),
    ("Headers", "headers"),
    ("Body", "text"),
)


class DeliveryPrinter:
    """Prints every delivery, or only a running count when silent."""

    def __init__(self, console: Console | None = None, silent: bool = False):
        self.console = console or Console()
        self.silent = silent
        self.consumed = 0

    def waiting(self) -> None:
        self.console.print("⏳ Waiting for messages. To exit press [yellow]CTRL+C[/yellow]")

    def show(self, delivery: Delivery) -> None:
        self.consumed += 1
        if self.silent:
            self.console.print(
                f"💾 Consumed [green]{self.consumed}[/green] messages. "
                "To exit press [yellow]CTRL+C[/yellow]",
                end="\r",
            )
            return

        lines = ["📧 [yellow]Received a message[/yellow]"]
        for label, attribute in FIELDS:
            value = getattr(delivery, attribute)
            lines.append(f"[green]# {label:<15}: [/green]{escape(self._format(value))}")
        self.console.print("\n".join(lines))

    @staticmethod
    def _format(value: object) -> str:
        if value is None:
            return ""
        if isinstance(value, dict):
            return " ".join(f"{k}:{v}" for k, v in value.items())
        return str(value)
