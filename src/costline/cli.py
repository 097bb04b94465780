"""CLI interface for costline."""

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .analytics import NoTranscriptsError, burn_rate, daily_cost, model_breakdown
from .auth import AuthConfig, NoCredentialsError, resolve, save_token
from .config import AUTH_FILE
from .logs import setup_logging
from .models import TokenResult
from .pricing import get_pricing, lookup
from .statusline import build_usage_fetcher
from .usage import UsageAPIError

console = Console()

WINDOW_LABELS = {
    "five_hour": "5 hour",
    "seven_day": "7 day",
    "seven_day_sonnet": "7 day (Sonnet)",
    "seven_day_opus": "7 day (Opus)",
}


@click.group()
@click.version_option(__version__)
@click.option("--log-level", default="warning", type=click.Choice(["debug", "info", "warning", "error"]))
def cli(log_level):
    """costline - cost and usage telemetry for the Claude Code status line."""
    setup_logging(log_level)


@cli.command()
@click.option("--status", "show_status", is_flag=True, help="Report credential status")
def auth(show_status):
    """Save a pasted OAuth token, or report the current credential state."""
    if show_status:
        _report_auth_status()
        return

    console.print("Paste your OAuth access token (press Enter when done):")
    token = click.get_text_stream("stdin").readline().strip()
    if not token:
        raise click.ClickException("empty token")
    try:
        path = save_token(TokenResult(access_token=token), AUTH_FILE)
    except OSError as e:
        raise click.ClickException(f"write credentials: {e}") from e
    console.print(f"[green]Token saved to {path}[/]")


def _report_auth_status():
    try:
        result = resolve(AuthConfig(auth_file=AUTH_FILE))
    except NoCredentialsError as e:
        console.print("[red]No credentials found.[/]")
        console.print(f"Details: {e}", markup=False)
        console.print("\nTo authenticate, run: costline auth")
        return

    console.print(f"Source: {result.source}", markup=False)
    if result.expires_at is None:
        console.print("Status: [green]valid[/] (no expiry info)")
        return

    console.print(f"Expires: {result.expires_at.astimezone():%Y-%m-%d %H:%M:%S}")
    if not result.expired:
        console.print("Status: [green]valid[/]")
        return

    console.print("Status: [bold red]EXPIRED[/]")
    if result.refresh_token:
        console.print("A refresh token is available. The token will be refreshed on next use.")
    else:
        console.print("No refresh token available. Run 'claude auth' to re-authenticate.")


@cli.command()
@click.option("--transcript", "-t", default="", help="Current session transcript path")
def stats(transcript):
    """Show today's cost, burn rate and per-model costs from transcripts."""
    try:
        today = daily_cost(transcript)
        rate = burn_rate(transcript)
        breakdown = model_breakdown(transcript)
    except NoTranscriptsError:
        console.print("[yellow]No transcript files found.[/]")
        return

    console.print(f"\n[bold]Today:[/] [yellow]${today:.2f}[/]")
    console.print(f"[bold]Burn rate:[/] [yellow]${rate:.2f}/hr[/]\n")

    if not breakdown:
        console.print("[bold]Models:[/] -\n")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Model", style="white")
    table.add_column("Cost", justify="right", style="yellow")
    for m in breakdown:
        table.add_row(m.display_name, f"${m.cost:.2f}")
    console.print(table)
    console.print()


@cli.command()
def usage():
    """Show plan usage windows from the OAuth usage API."""
    fetch = build_usage_fetcher()
    try:
        resp = fetch()
    except (NoCredentialsError, UsageAPIError) as e:
        console.print(str(e), style="red", markup=False)
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Window")
    table.add_column("Used", justify="right")
    table.add_column("Resets", style="dim")
    for name, window in resp.windows().items():
        resets = window.reset_time()
        table.add_row(
            WINDOW_LABELS[name],
            f"{window.utilization:.0f}%",
            f"{resets.astimezone():%a %H:%M}" if resets else "-",
        )
    console.print(table)

    extra = resp.extra_usage
    if extra and extra.is_enabled:
        console.print(f"Extra usage: ${extra.used_credits_usd:.2f} of ${extra.monthly_limit_usd:.2f}")


@cli.command()
@click.argument("model")
def price(model):
    """Show per-million-token pricing for MODEL."""
    pricing = lookup(get_pricing(), model)
    if pricing is None:
        console.print(f"[yellow]No pricing found for {model}[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Tokens")
    table.add_column("$/MTok", justify="right", style="yellow")
    table.add_row("Input", f"{pricing.input_cost_per_token * 1_000_000:.2f}")
    table.add_row("Output", f"{pricing.output_cost_per_token * 1_000_000:.2f}")
    table.add_row("Cache write", f"{pricing.cache_creation_input_token_cost * 1_000_000:.2f}")
    table.add_row("Cache read", f"{pricing.cache_read_input_token_cost * 1_000_000:.2f}")
    console.print(table)
