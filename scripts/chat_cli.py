#!/usr/bin/env python3
"""Interactive CLI for trying out the processing endpoint."""

import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive prompt that sends each line to /api/process."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive session."""
        self.console.print(
            Panel.fit(
                "[bold blue]📝 Notes Assistant - Interactive Prompt[/bold blue]\n"
                "Each message is processed independently (no conversation memory).\n"
                "Commands: /help, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to processing service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.strip() == "":
                    continue

                response = self._send_message(user_input)
                if response:
                    self._display_response(response)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, text: str) -> dict | None:
        """Send text to the processing endpoint."""
        try:
            self.console.print("[dim]💭 Thinking...[/dim]", end="")

            response = self.client.post(f"{self.base_url}/api/process", json={"text": text})

            # Clear the "thinking" message
            self.console.print("\r" + " " * 20 + "\r", end="\n")

            data = response.json()
            if response.status_code == 200:
                return data

            self.console.print(
                f"[red]❌ {response.status_code}: {data.get('error')}[/red] "
                f"[dim](request {data.get('requestId')}, {data.get('processingTime', 0):.0f}ms)[/dim]"
            )
            return None

        except (httpx.HTTPError, ValueError) as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

    def _display_response(self, response: dict) -> None:
        """Display AI response with nice formatting."""
        assistant_text = response.get("response", "No response")

        self.console.print(
            Panel(
                Markdown(assistant_text),
                title="[bold green]🤖 Assistant[/bold green]",
                subtitle=f"[dim]{response.get('requestId')} · {response.get('processingTime', 0):.0f}ms[/dim]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /quit or /exit - Exit

[bold]Examples:[/bold]
1. "Summarize this: The sky is blue."
2. "What's the weather in Berlin right now?"

[bold]Tips:[/bold]
• Failed requests show the stage that failed and the request ID to look up in server logs
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
