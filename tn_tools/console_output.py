# TN-Fedora-Tools/tn_tools/console_output.py

import sys
from typing import Any, List, Optional, Sequence
from rich.console import Console
from rich.text import Text
from rich.style import Style
from rich.prompt import Prompt, Confirm
from rich.rule import Rule
from rich.padding import Padding
from rich.panel import Panel

# No auto-highlighting: command lines are full of paths and version numbers.
console = Console(highlight=False)

PROMPT_STYLE = Style(color="magenta")

# The red "TN" block letters shared by all three tools.
BANNER_LETTERS = (
    "████████╗███╗   ██╗",
    "╚══██╔══╝████╗  ██║",
    "   ██║   ██╔██╗ ██║",
    "   ██║   ██║╚██╗██║",
    "   ██║   ██║ ╚████║",
    "   ╚═╝   ╚═╝  ╚═══╝",
)
BANNER_SEPARATOR = "-" * 58

# --- Output Functions ---

def print_banner(subtitle_lines: Sequence[str]):
    """
    Prints the TN banner: red block letters, then the tool's subtitle lines
    framed by blue separators.
    """
    for line in BANNER_LETTERS:
        console.print(Text(line, style="red"))
    console.print(Text(BANNER_SEPARATOR, style="blue"))
    for line in subtitle_lines:
        console.print(Text(f"   {line}", style="blue"))
    console.print(Text(BANNER_SEPARATOR, style="blue"))
    console.line()

def print_info(message: Any):
    console.print(f"[bold blue]ℹ️ INFO:[/] {message}")

def print_warning(message: Any):
    console.print(f"[bold yellow]⚠️ WARNING:[/] {message}")

def print_error(message: Any, exit_after: bool = False):
    """
    Prints an error in bold red. With exit_after, ends the run with exit
    status 1; the tasks use this only for unmet preconditions.
    """
    console.print(f"[bold red]❌ ERROR: {message}[/]")
    if exit_after:
        console.print("[dim red]Exiting with code 1...[/]")
        sys.exit(1)

def print_success(message: Any):
    console.print(f"[bold green]✅ SUCCESS:[/] {message}")

def print_dim(message: Any):
    """Low-importance note, e.g. a step that was skipped on purpose."""
    console.print(f"[dim]{message}[/]")

def print_step(title: str, char: str = "="):
    """Section heading drawn as a magenta rule, e.g. print_step("Updating via DNF...")."""
    console.print(Rule(f"[bold magenta]{title}[/]", style="magenta", characters=char))

def print_sub_step(message: str):
    console.print(Padding(f"[bright_blue]❯[/] {message}", (0, 0, 0, 2)))

def print_panel(content: Any, title: Optional[str] = None, style: str = "blue", padding: tuple = (0, 1)):
    console.print(
        Panel(content, title=f"[bold]{title}[/]" if title else None, border_style=style, padding=padding, expand=False)
    )

def print_rule(style: str = "dim white"):
    console.print(Rule(style=style, characters="-"))

def print_step_summary(task_name: str, failed_steps: List[str]):
    """
    Prints the end-of-run summary for a task. Failed steps are listed in a
    yellow panel; they never change the exit code.
    """
    if not failed_steps:
        return
    body = "\n".join(f"• {step}" for step in failed_steps)
    print_panel(
        f"These steps did not complete cleanly and were skipped over:\n{body}\n\n"
        "[dim]See the log file for the full command output.[/]",
        title=f"{task_name}: partial failures",
        style="yellow"
    )

# --- Input Functions ---

def ask_question(prompt_message: str, choices: List[str]) -> str:
    """Asks the operator to pick one of choices; Rich re-prompts on anything else."""
    rich_prompt = Text.assemble(("❓ ", "default"), (prompt_message, PROMPT_STYLE))
    return Prompt.ask(rich_prompt, choices=choices, show_choices=False)

def confirm_action(prompt_message: str, default: bool = False) -> bool:
    rich_prompt = Text.assemble(("🤔 ", "default"), (prompt_message, PROMPT_STYLE), (" (y/n)", "dim white"))
    return Confirm.ask(rich_prompt, default=default)
