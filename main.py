"""
Action Orchestrator — Main CLI Entrypoint.

Wires all layers and runs the interactive CLI loop.
"""

import argparse
import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from capabilities.builtin import BraveSearchClient, DexScreenerClient, PriceAlertBook
from capabilities.catalog import descriptor_for, known_capabilities, register_catalog
from capabilities.fallbacks import FallbackTable
from capabilities.gateway import CapabilityGateway
from capabilities.registry import CapabilityRegistry
from conversation.window import ContextWindowManager
from entry.cli import CLIAdapter, ConsoleChannel
from execution.engine import GraphExecutor
from execution.retry import RetryFallbackResolver, RetryPolicy
from interaction.channel import UserChannel
from interaction.confirmation import ConfirmationGate
from interaction.pending import PendingRequests
from interaction.resolver import ParameterResolver
from models.selector import ModelSelector
from orchestrator.orchestrator import Orchestrator
from orchestrator.session import Session
from planner.gateway import PlannerGateway, TextGenerator
from planner.graph_builder import TaskGraphBuilder
from planner.summarizer import ResultSummarizer
from shared.models import TurnResult
from shared.settings import OrchestratorSettings

# ─── Configuration ──────────────────────────────────────────────

logger = logging.getLogger(__name__)

# Ensure local .env is loaded before reading runtime configuration.
load_dotenv(override=False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# ─── Rich Console ───────────────────────────────────────────────

console = Console()


def setup_logging() -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@dataclass
class Pipeline:
    settings: OrchestratorSettings
    registry: CapabilityRegistry
    pending: PendingRequests
    channel: UserChannel
    orchestrator: Orchestrator
    model_selector: Any
    closeables: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        for resource in self.closeables:
            await resource.aclose()
        close = getattr(self.model_selector, "close", None)
        if close is not None:
            outcome = close()
            if asyncio.iscoroutine(outcome):
                await outcome


def default_handlers(settings: OrchestratorSettings) -> tuple[dict[str, Any], list[Any]]:
    """Handlers of the built-in capabilities plus the clients to close on shutdown."""
    dexscreener = DexScreenerClient(base_url=settings.dexscreener_base_url)
    alerts = PriceAlertBook()
    handlers: dict[str, Any] = {**dexscreener.handlers(), **alerts.handlers()}
    closeables: list[Any] = [dexscreener]
    if settings.brave_api_key:
        brave = BraveSearchClient(api_key=settings.brave_api_key)
        handlers.update(brave.handlers())
        closeables.append(brave)
    else:
        logger.info("BRAVE_API_KEY not set; search_internet disabled")
    return handlers, closeables


def build_pipeline(
    settings: OrchestratorSettings | None = None,
    channel: UserChannel | None = None,
    model_selector: TextGenerator | None = None,
    handlers: dict[str, Any] | None = None,
) -> Pipeline:
    """Wire every layer. Arguments override the defaults (tests, alternate front ends)."""
    settings = settings or OrchestratorSettings.from_env()
    channel = channel or ConsoleChannel(console)
    closeables: list[Any] = []
    if handlers is None:
        handlers, closeables = default_handlers(settings)

    registry = CapabilityRegistry()
    register_catalog(registry, handlers)
    registry.freeze()

    if model_selector is None:
        model_selector = ModelSelector(base_url=settings.model_base_url, provider=settings.model_provider)

    pending = PendingRequests()
    window = ContextWindowManager(
        user_turns=settings.context_user_turns,
        assistant_turns=settings.context_assistant_turns,
        result_char_budget=settings.result_char_budget,
    )
    planner = PlannerGateway(
        model_selector,
        registry,
        window,
        model_name=settings.planner_model,
        timeout_seconds=settings.planner_timeout_seconds,
    )
    builder = TaskGraphBuilder(registry)
    confirmation_gate = ConfirmationGate(channel, pending, timeout_seconds=settings.confirm_timeout_seconds)
    resolver = ParameterResolver(
        registry,
        channel,
        pending,
        timeout_seconds=settings.param_timeout_seconds,
        max_rounds=settings.max_prompt_rounds,
    )
    retry_resolver = RetryFallbackResolver(
        CapabilityGateway(registry),
        registry,
        FallbackTable(),
        confirmation_gate=confirmation_gate,
        policy=RetryPolicy(
            max_attempts=settings.max_attempts,
            fallback_attempts=settings.fallback_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
        ),
    )
    executor = GraphExecutor(
        registry,
        resolver,
        confirmation_gate,
        retry_resolver,
        builder,
        channel=channel,
        max_followups=settings.max_followups,
        parallel_siblings=settings.parallel_siblings,
    )
    summarizer = ResultSummarizer(char_budget=settings.summary_char_budget)

    def session_factory(session_id: str) -> Session:
        return Session(
            session_id,
            planner,
            builder,
            executor,
            summarizer,
            max_replans=settings.max_replans,
            followups_enabled=settings.max_followups > 0,
        )

    return Pipeline(
        settings=settings,
        registry=registry,
        pending=pending,
        channel=channel,
        orchestrator=Orchestrator(session_factory, pending, max_sessions=settings.max_sessions),
        model_selector=model_selector,
        closeables=closeables,
    )


def render_result(result: TurnResult) -> None:
    if result.status == "delivered":
        return
    border = {"success": "green", "partial": "yellow", "text": "cyan"}.get(result.status, "red")
    console.print(Panel(Text(result.text or "(no output)"), title="Assistant", border_style=border, box=box.ROUNDED))
    if result.tasks:
        table = Table(box=box.SIMPLE, show_header=True, header_style="dim")
        table.add_column("task")
        table.add_column("status")
        table.add_column("attempts", justify="right")
        table.add_column("via")
        for task in result.tasks:
            table.add_row(task["task_id"], task["status"], str(task["attempts"]), task.get("executed_by") or "")
        console.print(table)


async def run_agent_loop() -> None:
    """Interactive Agent Loop."""
    console.print(Panel(
        Text.from_markup(
            "[bold cyan]Action Orchestrator[/bold cyan]\n"
            "[dim]Type your request or 'exit' to quit[/dim]"
        ),
        title="🤖",
        border_style="cyan",
        box=box.DOUBLE,
    ))

    pipeline = build_pipeline()
    cli = CLIAdapter()
    orchestrator = pipeline.orchestrator
    console.print(f"[dim]Session: {cli.session_id}[/dim]")
    console.print(f"[dim]Capabilities: {len(pipeline.registry)}[/dim]")
    console.print()

    turn: asyncio.Task | None = None
    try:
        while True:
            raw_input = await asyncio.to_thread(console.input, "[bold cyan]You → [/]")
            if raw_input.strip().lower() in ("exit", "quit", "q"):
                console.print("[dim]Goodbye! 👋[/dim]")
                break
            if not raw_input.strip():
                continue

            entry_request = cli.read_input(raw_input)
            if orchestrator.deliver(entry_request.session_id, entry_request.input_text):
                continue
            if turn is not None and not turn.done():
                console.print("[dim]Still working on the previous request...[/dim]")
                continue

            turn = asyncio.create_task(orchestrator.handle(entry_request))
            turn.add_done_callback(lambda t: render_result(t.result()) if not t.cancelled() else None)
            # Let the turn run until it needs input or finishes.
            await asyncio.sleep(0)
            while not turn.done() and not pipeline.pending.has_pending(cli.session_id):
                await asyncio.sleep(0.05)
    finally:
        if turn is not None and not turn.done():
            turn.cancel()
        await pipeline.aclose()


def list_capabilities() -> None:
    """Print the catalogue; registered marks entries with a handler in this environment."""
    settings = OrchestratorSettings.from_env()
    available = set(PriceAlertBook().handlers())
    available.update(DexScreenerClient.CAPABILITIES)
    if settings.brave_api_key:
        available.add("search_internet")
    table = Table(title="Capabilities", box=box.SIMPLE)
    table.add_column("name")
    table.add_column("required")
    table.add_column("sensitive")
    table.add_column("registered")
    for name in known_capabilities():
        descriptor = descriptor_for(name)
        table.add_row(
            name,
            ", ".join(descriptor.required_params),
            "yes" if descriptor.sensitive else "",
            "yes" if name in available else "",
        )
    console.print(table)


def main() -> None:
    """Entrypoint with CLI args."""
    setup_logging()

    parser = argparse.ArgumentParser(description="Action Orchestrator")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser("run", help="Run interactive agent")
    subparsers.add_parser("capabilities", help="List registered capabilities")
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    args = parser.parse_args()

    if args.command == "capabilities":
        list_capabilities()
    elif args.command == "serve":
        import uvicorn

        uvicorn.run("api.server:app", host=args.host, port=args.port)
    elif args.command == "run" or args.command is None:
        try:
            asyncio.run(run_agent_loop())
        except KeyboardInterrupt:
            pass
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
