"""
Bedrock Team - a persona team that designs, writes, runs and debugs code on Amazon Bedrock.
Terminal UI built with Textual + Rich.
"""

import asyncio
import argparse
import logging
import os
import sys
import time
from typing import Dict, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.widgets import Header, Footer, Input, Static, Collapsible
from textual.reactive import reactive
from textual.timer import Timer
from textual.worker import Worker
from textual import on, work

from rich.console import Console
from rich.text import Text
from rich.table import Table
from rich.markdown import Markdown
from rich.markup import escape as rich_escape

from bedrock_service import BedrockService, BedrockError
from agent import (
    TeamOrchestrator,
    AgentEvent,
    AgentStart,
    AgentChunk,
    AgentComplete,
    CodeUpdate,
    FilesSaved,
    ExecutionStart,
    ExecutionResult,
    EvolutionCycle,
    WorkflowComplete,
    WorkflowError,
    WorkflowSummary,
    get_persona,
    describe_personas,
)
from config import get_model_name, get_credentials_info, app_config

# Configure logging to file so it doesn't interfere with the TUI
logging.basicConfig(
    filename="bedrock_team.log",
    level=getattr(logging, app_config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================
# Constants
# ============================================================

SPINNER_FRAMES = ["⣷", "⣯", "⣟", "⡿", "⢿", "⣻", "⣽", "⣾"]

ROLE_COLORS = {
    "architect": "#58a6ff",
    "developer": "#3fb950",
    "reviewer": "#d29922",
    "tester": "#bc8cff",
    "debugger": "#f85149",
}

# Lines of stdout shown before collapsing
COLLAPSE_LINE_THRESHOLD = 8


# ============================================================
# Event rendering (shared by the TUI and --plain)
# ============================================================

def persona_heading(role: str) -> Text:
    persona = get_persona(role)
    color = ROLE_COLORS.get(role, "#c9d1d9")
    return Text.from_markup(
        f"\n[bold {color}]● {persona.name}[/bold {color}] [#8b949e]· {persona.title}[/#8b949e]"
    )


def summary_table(summary: WorkflowSummary) -> Table:
    table = Table(title="Run summary", show_header=False, box=None, padding=(0, 2))
    table.add_column(style="#8b949e")
    table.add_column(style="#c9d1d9")
    status = "[bold #3fb950]success[/bold #3fb950]" if summary.execution_success else "[bold #f85149]not executed successfully[/bold #f85149]"
    table.add_row("result", Text.from_markup(status))
    table.add_row("model calls", str(summary.total_model_calls))
    for model_id, count in summary.calls_per_model.items():
        table.add_row("", f"{get_model_name(model_id)}: {count}")
    table.add_row("evolution cycles", str(summary.evolution_cycles))
    table.add_row("failed executions", str(summary.execution_attempts))
    table.add_row("unique errors", str(summary.unique_errors))
    table.add_row("re-architectures", str(summary.rearchitect_count))
    table.add_row("duration", f"{summary.duration_seconds:.1f}s")
    return table


def describe_event(event: AgentEvent):
    """One renderable for a non-streaming event, or None if it has no line of its own."""
    if isinstance(event, AgentStart):
        return persona_heading(event.role)
    if isinstance(event, CodeUpdate):
        name = event.code.filename or f"<{event.code.language} block>"
        return Text.from_markup(f"   [#3fb950]✎ {rich_escape(name)}[/#3fb950] [#6e7681]({event.code.language})[/#6e7681]")
    if isinstance(event, FilesSaved):
        return Text.from_markup(
            f"   [#8b949e]saved {len(event.paths)} file(s) to {rich_escape(event.root)}[/#8b949e]"
        )
    if isinstance(event, ExecutionStart):
        return Text.from_markup(f"\n   [bold #c9d1d9]▶ running {rich_escape(event.target_file)}[/bold #c9d1d9]")
    if isinstance(event, ExecutionResult):
        if event.success:
            return Text.from_markup("   [bold #3fb950]✓ execution succeeded[/bold #3fb950]")
        first = (event.diagnostic.strip().splitlines() or ["failed"])[-1]
        return Text.from_markup(f"   [bold #f85149]✗ execution failed:[/bold #f85149] [#f85149]{rich_escape(first[:200])}[/#f85149]")
    if isinstance(event, EvolutionCycle):
        if event.tier is None:
            label = f"mental evolution cycle {event.cycle_number}"
        else:
            label = f"attempt {event.cycle_number} · tier {event.tier} ({event.label})"
        return Text.from_markup(f"\n[#e3b341]── {rich_escape(label)} ──[/#e3b341]")
    if isinstance(event, WorkflowComplete):
        return summary_table(event.summary)
    if isinstance(event, WorkflowError):
        return Text.from_markup(f"\n   [bold #f85149]✗ {rich_escape(event.error)}[/bold #f85149]")
    return None


async def run_plain(task: str, output_directory: str, console: Optional[Console] = None) -> int:
    """Run one task without the TUI. Exit status 0 only on a successful execution."""
    console = console or Console()
    orchestrator = TeamOrchestrator(BedrockService(), output_directory=output_directory)
    status = 1
    async for event in orchestrator.stream(task):
        if isinstance(event, AgentChunk):
            console.print(event.content, end="", markup=False, highlight=False)
            continue
        if isinstance(event, AgentComplete):
            console.print()
            continue
        renderable = describe_event(event)
        if renderable is not None:
            console.print(renderable)
        if isinstance(event, WorkflowComplete) and event.summary.execution_success:
            status = 0
    return status


def check_connection(console: Optional[Console] = None) -> int:
    console = console or Console()
    console.print(f"[#8b949e]{get_credentials_info()}[/#8b949e]")
    try:
        service = BedrockService()
    except BedrockError as e:
        console.print(f"[bold #f85149]✗ {rich_escape(str(e))}[/bold #f85149]")
        return 1
    ok, message = service.test_connection()
    color = "#3fb950" if ok else "#f85149"
    console.print(f"[bold {color}]{'✓' if ok else '✗'} {rich_escape(message)}[/bold {color}]")
    return 0 if ok else 1


# ============================================================
# TUI Application
# ============================================================

class BedrockTeamApp(App):
    """Bedrock Team - persona team TUI"""

    TITLE = app_config.title

    CSS = """
    Screen {
        background: #0d1117;
    }

    #output-scroll {
        height: 1fr;
        border: none;
        padding: 1 2;
        scrollbar-size: 1 1;
        scrollbar-color: #30363d;
    }

    #output-scroll > Static {
        width: 100%;
        height: auto;
    }

    #output-scroll > Collapsible {
        width: 100%;
        height: auto;
        margin: 0 0 0 3;
    }

    .agent-stream {
        margin: 0 0 0 2;
        height: auto;
        color: #c9d1d9;
    }

    #user-input {
        dock: bottom;
        margin: 0 2 1 2;
        border: tall #30363d;
        background: #161b22;
        color: #c9d1d9;
        padding: 0 1;
    }

    #user-input:focus {
        border: tall #58a6ff;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: #161b22;
        color: #6e7681;
        padding: 0 2;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "cancel_or_quit", "Cancel / Quit", priority=True),
        Binding("ctrl+l", "clear_screen", "Clear"),
    ]

    is_running = reactive(False)

    def __init__(self, output_directory: str, initial_task: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.output_directory = os.path.abspath(output_directory)
        self.initial_task = initial_task
        self._bedrock_service: Optional[BedrockService] = None
        self._worker: Optional[Worker] = None
        self._orchestrator: Optional[TeamOrchestrator] = None
        self._stream_widgets: Dict[str, Static] = {}
        self._stream_text: Dict[str, str] = {}
        self._widget_counter = 0
        self._spinner_idx = 0
        self._spinner_timer: Optional[Timer] = None
        self._task_start_time: Optional[float] = None
        self._phase_label = ""

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="status-bar")
        yield VerticalScroll(id="output-scroll")
        yield Input(placeholder=" ❯ Describe a program for the team to build", id="user-input")
        yield Footer()

    def on_mount(self) -> None:
        self._init_services()
        self._show_welcome()
        self._update_status()
        self.query_one("#user-input", Input).focus()
        if self.initial_task:
            self._start(self.initial_task)

    def _init_services(self):
        try:
            self._bedrock_service = BedrockService()
        except BedrockError as e:
            self._log(Text.from_markup(
                f"\n   [bold #f85149]✗ Failed to initialize: {rich_escape(str(e))}[/bold #f85149]"
            ))

    def _show_welcome(self):
        self._log(Text.from_markup("\n[bold #58a6ff]bedrock[/bold #58a6ff][bold #f0f6fc] team[/bold #f0f6fc]\n"))
        for p in describe_personas():
            color = ROLE_COLORS.get(p["role"], "#c9d1d9")
            self._log(Text.from_markup(
                f"  [{color}]{p['name']:<5}[/{color}] [#8b949e]{p['title']:<20}[/#8b949e] "
                f"[#6e7681]{rich_escape(get_model_name(p['model']))}[/#6e7681]"
            ))
        self._log(Text.from_markup(
            f"\n[#484f58]output: {rich_escape(self.output_directory)}  ·  Ctrl+C to cancel[/#484f58]\n"
        ))

    # ============================================================
    # Output helpers
    # ============================================================

    def _next_id(self, prefix: str = "out") -> str:
        self._widget_counter += 1
        return f"{prefix}-{self._widget_counter}"

    def _log(self, renderable, classes: str = "") -> Static:
        scroll = self.query_one("#output-scroll", VerticalScroll)
        widget = Static(renderable, id=self._next_id(), classes=classes)
        scroll.mount(widget)
        scroll.scroll_end(animate=False)
        return widget

    def _log_collapsible(self, title: str, content: str, collapsed: bool = True, style: str = "#8b949e") -> None:
        scroll = self.query_one("#output-scroll", VerticalScroll)
        body = Static(Text(content, style=style), id=self._next_id("body"))
        scroll.mount(Collapsible(body, title=title, collapsed=collapsed, id=self._next_id("coll")))
        scroll.scroll_end(animate=False)

    def action_clear_screen(self) -> None:
        self.query_one("#output-scroll", VerticalScroll).remove_children()

    # ============================================================
    # Status bar
    # ============================================================

    def _update_status(self):
        parts = [f"output: {os.path.basename(self.output_directory) or self.output_directory}"]
        if self._phase_label:
            parts.append(self._phase_label)
        if self.is_running:
            frame = SPINNER_FRAMES[self._spinner_idx % len(SPINNER_FRAMES)]
            secs = int(time.time() - self._task_start_time) if self._task_start_time else 0
            parts.append(f"{frame} {secs}s")
        self.query_one("#status-bar", Static).update(" · ".join(parts))

    def _start_spinner(self):
        self._spinner_idx = 0
        self._task_start_time = time.time()
        self._spinner_timer = self.set_interval(0.1, self._tick_spinner)

    def _stop_spinner(self):
        if self._spinner_timer:
            self._spinner_timer.stop()
            self._spinner_timer = None
        self._task_start_time = None

    def _tick_spinner(self):
        self._spinner_idx += 1
        self._update_status()

    # ============================================================
    # Input and run
    # ============================================================

    @on(Input.Submitted, "#user-input")
    async def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        self.query_one("#user-input", Input).value = ""
        if not text:
            return
        if self.is_running:
            self._log(Text.from_markup("   [#e3b341]a run is in progress; Ctrl+C cancels it[/#e3b341]"))
            return
        self._start(text)

    def _start(self, task: str) -> None:
        self._log(Text.from_markup(f"\n[bold #f0f6fc]❯ [/bold #f0f6fc][#c9d1d9]{rich_escape(task)}[/#c9d1d9]"))
        self._worker = self._run_task(task)

    @work(thread=False, exclusive=True)
    async def _run_task(self, task: str) -> None:
        if not self._bedrock_service:
            self._log(Text.from_markup(
                "   [bold #f85149]✗ Bedrock service not initialized. Check AWS credentials.[/bold #f85149]"
            ))
            return

        orchestrator = TeamOrchestrator(self._bedrock_service, output_directory=self.output_directory)
        self._orchestrator = orchestrator
        self.is_running = True
        self._start_spinner()
        try:
            await orchestrator.run(task, self._handle_event)
        except asyncio.CancelledError:
            self._log(Text.from_markup("   [italic #e3b341]run cancelled[/italic #e3b341]"))
            raise
        except Exception as e:
            logger.exception("Run failed")
            self._log(Text.from_markup(f"\n   [bold #f85149]✗ {rich_escape(str(e))}[/bold #f85149]"))
        finally:
            self.is_running = False
            self._phase_label = ""
            self._stop_spinner()
            self._update_status()

    async def _handle_event(self, event: AgentEvent) -> None:
        if isinstance(event, AgentChunk):
            self._stream_text[event.role] = self._stream_text.get(event.role, "") + event.content
            widget = self._stream_widgets.get(event.role)
            if widget is not None:
                widget.update(Text(self._stream_text[event.role]))
                self.query_one("#output-scroll", VerticalScroll).scroll_end(animate=False)
            return

        if isinstance(event, AgentComplete):
            widget = self._stream_widgets.pop(event.role, None)
            self._stream_text.pop(event.role, None)
            if widget is not None:
                widget.update(Markdown(event.content))
            return

        renderable = describe_event(event)
        if renderable is not None:
            self._log(renderable)

        if isinstance(event, AgentStart):
            self._phase_label = get_persona(event.role).name
            self._stream_text[event.role] = ""
            self._stream_widgets[event.role] = self._log(Text(""), classes="agent-stream")
        elif isinstance(event, ExecutionResult):
            body = event.stdout if event.success else f"{event.diagnostic}\n\n--- stdout ---\n{event.stdout}"
            lines = body.count("\n") + 1
            self._log_collapsible(
                f"output ({lines} lines)",
                body,
                collapsed=lines > COLLAPSE_LINE_THRESHOLD,
                style="#8b949e" if event.success else "#f0883e",
            )
        self._update_status()

    def action_cancel_or_quit(self) -> None:
        if self.is_running and self._worker is not None:
            self._worker.cancel()
            if self._orchestrator is not None:
                self._orchestrator.backend.cancel_running_command()
            self._log(Text.from_markup("   [italic #e3b341]cancelling…[/italic #e3b341]"))
        else:
            self.exit()


def main():
    parser = argparse.ArgumentParser(
        description="Bedrock Team - persona team that builds, runs and debugs code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bedrock-team                                  Interactive TUI
  bedrock-team -t "benchmark numpy matmul"      Start a run immediately
  bedrock-team --plain -t "..." -o ./out        Print the event stream, no TUI
  bedrock-team --check                          Verify credentials and Bedrock access
        """,
    )
    parser.add_argument("-t", "--task", default=None, help="Task to run immediately")
    parser.add_argument(
        "-o", "--output",
        default=app_config.output_directory,
        help=f"Staging directory for generated code (default: {app_config.output_directory})",
    )
    parser.add_argument("--plain", action="store_true", help="Print events to the console instead of the TUI")
    parser.add_argument("--check", action="store_true", help="Verify AWS credentials and Bedrock access, then exit")

    args = parser.parse_args()
    output_directory = os.path.abspath(os.path.expanduser(args.output))

    if args.check:
        sys.exit(check_connection())

    if args.plain:
        if not args.task:
            print("Error: --plain needs --task")
            sys.exit(2)
        sys.exit(asyncio.run(run_plain(args.task, output_directory)))

    app = BedrockTeamApp(output_directory=output_directory, initial_task=args.task)
    app.run()


if __name__ == "__main__":
    main()
