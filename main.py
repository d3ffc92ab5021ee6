"""
Coach Agent - run a sandboxed task-execution agent against a repository.
Terminal output and the interactive approval gate use Rich.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from agent import (
    AgentAborted, AgentError, AgentEvent, ApprovalDecision, TaskRequest, TaskResult,
    create_task_execution_agent, ensure_workspace_agents_config_file,
    resolve_agent_profile, write_workspace_agents_config,
)
from backend import LocalBackend
from bedrock_service import BedrockService, BedrockError
from config import app_config

# Configure logging to file so it doesn't interfere with the console output
logging.basicConfig(
    filename=app_config.log_file,
    level=getattr(logging, app_config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

console = Console()

APPROVAL_CHOICES = {
    "o": ApprovalDecision.ALLOW_ONCE,
    "a": ApprovalDecision.ALLOW_ALWAYS,
    "d": ApprovalDecision.DENY,
    "q": ApprovalDecision.ABORT,
}


async def _print_event(event: AgentEvent) -> None:
    if event.type == "progress":
        console.print(f"[dim]{rich_escape(event.content)}[/dim]")
    elif event.type == "tool_rejected":
        console.print(f"[yellow]denied:[/yellow] {rich_escape(event.content)}")
    elif event.type == "reverted":
        console.print(f"[red]{rich_escape(event.content)} - changes reverted[/red]")


def _make_approval_gate(auto_allow: bool):
    async def approve(command: str, reason: str) -> str:
        if auto_allow:
            return ApprovalDecision.ALLOW_ONCE.value
        console.print(Panel(
            f"[bold]{rich_escape(command)}[/bold]\n[dim]{rich_escape(reason)}[/dim]",
            title="Command needs approval",
            border_style="yellow",
        ))
        answer = await asyncio.to_thread(
            Prompt.ask,
            "Allow once (o), always (a), deny (d) or abort (q)?",
            choices=list(APPROVAL_CHOICES),
            default="d",
            console=console,
        )
        return APPROVAL_CHOICES[answer].value
    return approve


def _print_result(result: TaskResult) -> None:
    style = "green" if result.ok else "red"
    console.print(Panel(rich_escape(result.summary), title="Done" if result.ok else "Failed", border_style=style))
    if result.files_changed:
        console.print("Files changed: " + ", ".join(rich_escape(p) for p in result.files_changed))
    if result.commands_run:
        table = Table("Command", "Exit")
        for run in result.commands_run:
            table.add_row(rich_escape(run.command), str(run.exit_code))
        console.print(table)


async def run_task(working_dir: str, task: TaskRequest, agent_id: Optional[str] = None,
                   max_turns: Optional[int] = None, auto_allow: bool = False) -> TaskResult:
    config = ensure_workspace_agents_config_file(working_dir)
    profile = resolve_agent_profile(config, agent_id)
    provider_settings = profile.provider or {}
    provider = BedrockService(
        model_id=provider_settings.get("model"),
        region=provider_settings.get("region"),
    )

    async def save_config(next_config) -> None:
        path = await asyncio.to_thread(write_workspace_agents_config, working_dir, next_config)
        console.print(f"[dim]Saved allowlist to {rich_escape(path)}[/dim]")

    agent = create_task_execution_agent(
        provider,
        LocalBackend(working_dir, command_timeout=app_config.command_timeout),
        config,
        agent_id=profile.id,
        approve_command=_make_approval_gate(auto_allow),
        save_config=save_config,
        on_event=_print_event,
        max_turns=max_turns or app_config.max_turns,
    )
    return await agent.execute(task)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Coach Agent - sandboxed task execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py "Fix failing test" -d ~/my-project
  python main.py "Rename helper" --description "Rename foo to bar" -f src/util.py
        """,
    )
    parser.add_argument("title", help="Task title")
    parser.add_argument("--description", default="", help="Task description")
    parser.add_argument("-f", "--file", action="append", default=[], dest="files",
                        help="Affected file hint (repeatable)")
    parser.add_argument(
        "-d", "--directory",
        default=app_config.working_directory,
        help="Workspace root for the agent (default: current directory)",
    )
    parser.add_argument("--agent", default=None, help="Agent profile id from .coach/agents.json")
    parser.add_argument("--max-turns", type=int, default=None, help="Turn budget (default: 20)")
    parser.add_argument("--yes", action="store_true", help="Allow every command that needs approval once")

    args = parser.parse_args(argv)

    working_dir = os.path.abspath(args.directory)
    if not os.path.isdir(working_dir):
        console.print(f"[red]Error: {rich_escape(working_dir)} is not a directory[/red]")
        return 2

    task = TaskRequest(title=args.title, description=args.description, affected_files=args.files)
    try:
        result = asyncio.run(run_task(working_dir, task, args.agent, args.max_turns, args.yes))
    except AgentAborted:
        console.print("[red]Aborted by user.[/red]")
        return 2
    except (AgentError, BedrockError) as e:
        logger.error(f"Task failed: {e}")
        console.print(f"[red]Error: {rich_escape(str(e))}[/red]")
        return 2

    _print_result(result)
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
