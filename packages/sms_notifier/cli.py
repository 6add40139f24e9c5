# ruff: noqa: I001
"""CLI for the ``sms_notifier`` package.

This module exposes callable command handlers (``cmd_parse``,
``cmd_history``, ...) that return a process exit code, and a Typer-based
console interface over them. Environment variables (notably
``SMS_NOTIFIER_PUSHBULLET_API_KEY`` and ``DATABASE_URL``) are loaded from a
local ``.env`` using ``python-dotenv`` before any command runs. Business
logic lives in ``sms_notifier.app``, ``sms_notifier.parser`` and
``sms_notifier.persistence``.

Errors are written to stderr as ``Error: ...`` and the command exits with
status 1.
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer.models import OptionInfo

from .config import Settings, load_settings
from .errors import ConfigurationError, NotifierError
from .formatting import format_currency, format_datetime
from .grammars.common import BANK_TZ
from .logging_setup import configure_logging
from .models import Transaction

console = Console()


# ---- Small module-level helpers used by CLI commands -------------------------


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _load(config: Path | None) -> Settings:
    return load_settings(config, use_dotenv=False)


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _transaction_table(tx: Transaction) -> Table:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="cyan", no_wrap=True)
    table.add_column()
    table.add_row("bank", f"{tx.sender} ({tx.bank.value})")
    table.add_row("type", tx.transaction_type.value)
    table.add_row("amount", f"{format_currency(tx.transaction_amount_minor)} VND")
    table.add_row("balance", f"{format_currency(tx.balance_minor)} VND")
    table.add_row("account", tx.account_number or "-")
    table.add_row("time", format_datetime(tx.timestamp_millis))
    table.add_row("description", tx.description or "-")
    return table


def _open_store(settings: Settings, database_url: str | None):
    from .persistence import TransactionStore

    url = database_url or settings.storage.database_url
    if not url:
        raise ConfigurationError(
            "no database configured (set DATABASE_URL, database_url in the settings "
            "file, or pass --database-url)"
        )
    return TransactionStore(url)


def _local_datetime(value: datetime | None) -> datetime | None:
    # Dates typed on the command line are Vietnam local time, like the SMS.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=BANK_TZ)


# ---- Command handlers ---------------------------------------------------------


def cmd_parse(text: str, *, sender: str = "", as_json: bool = False) -> int:
    """Parse one SMS and print the extracted fields.

    Returns 1 when the text is not a valid transaction (the reason is printed
    to stderr); with ``as_json`` the full record is printed either way.
    """

    from .parser import parse

    tx = parse(text, sender)
    if as_json:
        _print_json(tx.to_dict())
    elif tx.is_valid:
        console.print(_transaction_table(tx))
    if not tx.is_valid:
        return _error(tx.error or "invalid transaction")
    return 0


def cmd_validate(text: str) -> int:
    from .parser import validate

    result = validate(text)
    if not result.is_valid:
        return _error(result.error or "invalid SMS text")
    console.print(f"[green]valid[/green] {result.bank.value}")
    return 0


def cmd_samples(*, as_json: bool = False) -> int:
    from .parser import parse, sample_messages

    samples = sample_messages()
    if as_json:
        _print_json({bank.value: parse(text).to_dict() for bank, text in samples.items()})
        return 0
    for bank, text in samples.items():
        console.print(Panel(text, title=bank.value, title_align="left"))
        console.print(_transaction_table(parse(text)))
    return 0


def cmd_prompt() -> int:
    from .term_ui import prompt_for_message

    try:
        text = prompt_for_message()
    except EOFError:
        text = None
    if text is None:
        console.print("[dim]canceled[/dim]")
        return 0
    return cmd_parse(text)


def cmd_test_connection(*, config: Path | None = None) -> int:
    from .stream_client import StreamClient

    try:
        settings = _load(config)
        api_key = settings.relay.api_key
        if not api_key:
            return _error(
                "relay API key is not configured "
                "(set SMS_NOTIFIER_PUSHBULLET_API_KEY or pushbullet_api)"
            )
        client = StreamClient(api_key)
    except ConfigurationError as e:
        return _error(str(e))

    result = asyncio.run(client.test_connection())
    if not result.success:
        return _error(f"relay connection failed: {result.error}")
    console.print(f"[green]connected[/green] as {result.user or 'unknown user'}")
    return 0


async def _listen(settings: Settings) -> int:
    from .app import NotifierApp
    from .stream_client import MAX_ATTEMPTS_MESSAGE
    from .surfaces import TerminalSurfaceBackend

    stop = asyncio.Event()
    exit_code = 0

    def _on_status(event: str, detail: str | None) -> None:
        nonlocal exit_code
        if event == "error":
            console.print(f"[red]relay error:[/red] {detail}")
            if detail == MAX_ATTEMPTS_MESSAGE:
                exit_code = 1
                stop.set()
        else:
            console.print(f"[cyan]relay {event}[/cyan]")

    notifier = NotifierApp(
        settings,
        backend=TerminalSurfaceBackend(console),
        status_listener=_on_status,
    )
    try:
        if not await notifier.start_services():
            return _error("could not start the relay stream (see log for details)")
        console.print("[dim]listening for bank SMS; Ctrl+C to stop[/dim]")
        await stop.wait()
    finally:
        await notifier.shutdown()
    return exit_code


def cmd_listen(*, config: Path | None = None) -> int:
    try:
        settings = _load(config)
    except ConfigurationError as e:
        return _error(str(e))
    if not settings.relay.api_key:
        return _error(
            "relay API key is not configured "
            "(set SMS_NOTIFIER_PUSHBULLET_API_KEY or pushbullet_api)"
        )
    try:
        return asyncio.run(_listen(settings))
    except KeyboardInterrupt:
        console.print("[dim]stopped[/dim]")
        return 0


async def _demo(settings: Settings, interval: float, hold: float) -> int:
    from .app import NotifierApp
    from .surfaces import TerminalSurfaceBackend

    notifier = NotifierApp(settings, backend=TerminalSurfaceBackend(console))
    try:
        for tx in notifier.get_sample_transactions()[:2]:
            notifier.admit_manual(tx)
        burst = notifier.show_sample_burst(interval)
        await asyncio.sleep(interval * burst + hold)
        console.print(f"[dim]{len(notifier.notifications)} popup(s) on screen[/dim]")
    finally:
        await notifier.shutdown()
    return 0


def cmd_demo(*, config: Path | None = None, interval: float = 0.8, hold: float = 5.0) -> int:
    try:
        settings = _load(config)
    except ConfigurationError as e:
        return _error(str(e))
    try:
        return asyncio.run(_demo(settings, interval, hold))
    except KeyboardInterrupt:
        return 0


def cmd_history(
    *,
    config: Path | None = None,
    database_url: str | None = None,
    limit: int = 20,
    offset: int = 0,
    bank: str | None = None,
    direction: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    as_json: bool = False,
) -> int:
    try:
        store = _open_store(_load(config), database_url)
        if search:
            rows = store.search(search, limit=limit)
        else:
            rows = store.history(
                limit=limit,
                offset=offset,
                bank=bank,
                direction=direction,
                date_from=_local_datetime(date_from),
                date_to=_local_datetime(date_to),
            )
    except (NotifierError, ValueError) as e:
        return _error(str(e))
    except Exception as e:  # noqa: BLE001 - surface DB failures as CLI errors
        return _error(f"history query failed: {e}")

    if as_json:
        _print_json(rows)
        return 0
    if not rows:
        console.print("[dim]no transactions[/dim]")
        return 0

    table = Table(title="Transactions")
    table.add_column("id", justify="right")
    table.add_column("time (UTC)")
    table.add_column("bank")
    table.add_column("direction")
    table.add_column("amount", justify="right")
    table.add_column("description", overflow="fold")
    for r in rows:
        style = "green" if r["transaction_type"] == "incoming" else "red"
        table.add_row(
            str(r["id"]),
            (r["transaction_time"] or r["received_at"] or "")[:16].replace("T", " "),
            r["bank"],
            f"[{style}]{r['transaction_type']}[/{style}]",
            format_currency(r["amount"]),
            r["description"],
        )
    console.print(table)
    return 0


def cmd_stats(
    *,
    config: Path | None = None,
    database_url: str | None = None,
    days: int = 30,
    as_json: bool = False,
) -> int:
    try:
        store = _open_store(_load(config), database_url)
        stats = store.stats(days)
    except NotifierError as e:
        return _error(str(e))
    except Exception as e:  # noqa: BLE001 - surface DB failures as CLI errors
        return _error(f"stats query failed: {e}")

    if as_json:
        _print_json(stats)
        return 0
    table = Table(title=f"Last {days} days", show_header=False)
    table.add_column(style="cyan")
    table.add_column(justify="right")
    table.add_row("transactions", str(stats["total_transactions"]))
    table.add_row("incoming", f"{stats['incoming_count']} / {format_currency(stats['total_incoming'])} VND")
    table.add_row("outgoing", f"{stats['outgoing_count']} / {format_currency(stats['total_outgoing'])} VND")
    table.add_row("net", f"{format_currency(stats['net_amount'])} VND")
    table.add_row("banks", ", ".join(stats["banks"]) or "-")
    console.print(table)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Parse Vietnamese bank SMS relayed from a phone and show them as a "
        "stack of transaction popups. Loads settings from a local .env first."
    ),
)

# Shared option factories; each command gets its own OptionInfo instance.


def _config_option() -> OptionInfo:
    return typer.Option(
        "--config",
        help="Settings JSON file (default: $SMS_NOTIFIER_CONFIG or ~/.sms_notifier/config.json).",
        dir_okay=False,
    )


def _database_url_option() -> OptionInfo:
    return typer.Option(
        "--database-url", help="Override DATABASE_URL (falls back to settings/env)."
    )


def _json_option() -> OptionInfo:
    return typer.Option("--json", help="Print JSON instead of a table.")


DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S"]


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("parse")
def parse_cmd(
    text: Annotated[str, typer.Argument(help="Raw SMS text")],
    sender: Annotated[str, typer.Option(help="Sender label used for unknown banks")] = "",
    as_json: Annotated[bool, _json_option()] = False,
) -> None:
    """Parse one bank SMS and print the extracted transaction."""

    _exit(cmd_parse(text, sender=sender, as_json=as_json))


@app.command("validate")
def validate_cmd(text: Annotated[str, typer.Argument(help="Raw SMS text")]) -> None:
    """Quick pre-flight check (length and bank markers)."""

    _exit(cmd_validate(text))


@app.command("samples")
def samples_cmd(as_json: Annotated[bool, _json_option()] = False) -> None:
    """Show the documented SMS fixtures and how they parse."""

    _exit(cmd_samples(as_json=as_json))


@app.command("prompt")
def prompt_cmd() -> None:
    """Interactively paste an SMS; it is validated before parsing."""

    _exit(cmd_prompt())


@app.command("test-connection")
def test_connection_cmd(config: Annotated[Path | None, _config_option()] = None) -> None:
    """Check the relay API key without opening the stream."""

    _exit(cmd_test_connection(config=config))


@app.command("listen")
def listen_cmd(config: Annotated[Path | None, _config_option()] = None) -> None:
    """Subscribe to the relay and show incoming bank SMS as popups."""

    _exit(cmd_listen(config=config))


@app.command("demo")
def demo_cmd(
    config: Annotated[Path | None, _config_option()] = None,
    interval: Annotated[float, typer.Option(min=0.0, help="Seconds between demo popups")] = 0.8,
    hold: Annotated[float, typer.Option(min=0.0, help="Seconds to keep popups up")] = 5.0,
) -> None:
    """Show the sample transactions as a burst of popups."""

    _exit(cmd_demo(config=config, interval=interval, hold=hold))


@app.command("history")
def history_cmd(
    config: Annotated[Path | None, _config_option()] = None,
    database_url: Annotated[str | None, _database_url_option()] = None,
    limit: Annotated[int, typer.Option(min=1)] = 20,
    offset: Annotated[int, typer.Option(min=0)] = 0,
    bank: Annotated[str | None, typer.Option(help="vietinbank or vietcombank")] = None,
    direction: Annotated[str | None, typer.Option(help="incoming or outgoing")] = None,
    search: Annotated[str | None, typer.Option(help="Substring to search for")] = None,
    date_from: Annotated[
        datetime | None, typer.Option("--from", formats=DATE_FORMATS, help="Local time")
    ] = None,
    date_to: Annotated[
        datetime | None, typer.Option("--to", formats=DATE_FORMATS, help="Local time")
    ] = None,
    as_json: Annotated[bool, _json_option()] = False,
) -> None:
    """List stored transactions, newest first."""

    _exit(
        cmd_history(
            config=config,
            database_url=database_url,
            limit=limit,
            offset=offset,
            bank=bank,
            direction=direction,
            search=search,
            date_from=date_from,
            date_to=date_to,
            as_json=as_json,
        )
    )


@app.command("stats")
def stats_cmd(
    config: Annotated[Path | None, _config_option()] = None,
    database_url: Annotated[str | None, _database_url_option()] = None,
    days: Annotated[int, typer.Option(min=1)] = 30,
    as_json: Annotated[bool, _json_option()] = False,
) -> None:
    """Incoming/outgoing totals over the last N days."""

    _exit(cmd_stats(config=config, database_url=database_url, days=days, as_json=as_json))


@app.callback()
def _root(
    log_level: Annotated[
        str | None, typer.Option(help="Logging level (default: $SMS_NOTIFIER_LOG_LEVEL or INFO)")
    ] = None,
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m sms_notifier.cli`
    app()
