# trustnodes/cli/main.py
"""
CLI for operating, inspecting, auditing and exporting a trustnodes ledger.
"""

import os
import logging
import sqlite3
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from trustnodes.chain.ledger import TrustLedger
from trustnodes.core.canon import canonical_json_str, state_hash
from trustnodes.core.errors import LedgerError, LedgerNotInitializedError, HeightRegressionError
from trustnodes.core.types import DEFAULT_VERIFICATION_THRESHOLD
from trustnodes.storage import SQLiteStorage
from trustnodes.verify.verifier import LedgerVerifier

app = typer.Typer(
    name="trustnodes",
    help="Operate and inspect a web-of-trust reputation ledger",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

CALLER_OPTION = typer.Option(..., "--as", "-a", envvar="TRUSTNODES_CALLER", help="Principal making the call")
HEIGHT_OPTION = typer.Option(None, "--height", help="Block height (default: latest stored height + 1)")
DB_OPTION = typer.Option(None, "--db", hidden=True)


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. TRUSTNODES_DB_PATH environment variable
    3. Default: ~/.trustnodes/ledger.db
    """
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("TRUSTNODES_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".trustnodes" / "ledger.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else os.environ.get("TRUSTNODES_LOG_LEVEL", "WARNING").upper()
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    # package logger only, root stays untouched
    package_logger = logging.getLogger("trustnodes")
    package_logger.handlers = [handler]
    package_logger.setLevel(level)


def _resolve_db(ctx: typer.Context, db: Optional[Path]) -> Path:
    return get_db_path(db or (ctx.obj or {}).get("db"))


def open_ledger(db_path: Path, must_exist: bool = True) -> TrustLedger:
    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Create a ledger: trustnodes init --admin <principal>")
        console.print("  • Set env var: export TRUSTNODES_DB_PATH=/path/to/ledger.db")
        console.print("  • Or use --db: trustnodes identities --db /custom/path.db")
        raise typer.Exit(1)

    try:
        return TrustLedger(storage=SQLiteStorage(db_path))
    except sqlite3.DatabaseError as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


def _next_height(ledger: TrustLedger, height: Optional[int]) -> int:
    return height if height is not None else ledger.block_height + 1


def _run(ledger: TrustLedger, action):
    """Run a ledger call, then close the ledger. Ledger errors become a red message + exit 1."""
    try:
        return action()
    except LedgerError as e:
        console.print(f"[red]✗ {e.tag} (u{e.code}): {escape(e.args[0])}[/]")
        raise typer.Exit(1)
    except (LedgerNotInitializedError, HeightRegressionError) as e:
        console.print(f"[red]✗ {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        ledger.close()


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides TRUSTNODES_DB_PATH env var)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log ledger activity"),
):
    """Manage a trustnodes reputation ledger."""
    ctx.obj = {"db": db}
    _configure_logging(verbose)


@app.command()
def init(
    ctx: typer.Context,
    admin: str = typer.Option(..., "--admin", help="Genesis admin principal"),
    threshold: int = typer.Option(DEFAULT_VERIFICATION_THRESHOLD, "--threshold", min=0),
    db: Optional[Path] = DB_OPTION,
):
    """Create the ledger and its admin config (no-op if it already exists)."""
    db_path = _resolve_db(ctx, db)
    ledger = open_ledger(db_path, must_exist=False)
    if ledger.initialized:
        config = _run(ledger, lambda: ledger.config)
        console.print(f"[yellow]Ledger already initialized at {db_path}[/]")
    else:
        config = _run(ledger, lambda: ledger.genesis(admin, threshold))
        console.print(f"[green]✓ Ledger created at {db_path}[/]")
    console.print(f"  admin: {config.admin}  threshold: {config.verification_threshold}")


@app.command()
def register(
    ctx: typer.Context,
    caller: str = CALLER_OPTION,
    height: Optional[int] = HEIGHT_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Register the caller as a new identity."""
    ledger = open_ledger(_resolve_db(ctx, db))
    new_id = _run(ledger, lambda: ledger.register_identity(caller, height=_next_height(ledger, height)))
    console.print(f"[green]✓ Registered {caller} as identity #{new_id}[/]")


@app.command()
def attest(
    ctx: typer.Context,
    attestee: str = typer.Argument(..., help="Identity being attested"),
    score: int = typer.Argument(..., help="Score from 1 to 10"),
    context: str = typer.Argument("", help="Rationale (max 100 ASCII chars)"),
    caller: str = CALLER_OPTION,
    height: Optional[int] = HEIGHT_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Attest to another registered identity."""
    ledger = open_ledger(_resolve_db(ctx, db))
    _run(ledger, lambda: ledger.attest_to_identity(
        caller, attestee, score, context, height=_next_height(ledger, height)
    ))
    console.print(f"[green]✓ {caller} attested {attestee} with score {score}[/]")


@app.command("update-attestation")
def update_attestation(
    ctx: typer.Context,
    attestee: str = typer.Argument(..., help="Identity previously attested"),
    score: int = typer.Argument(..., help="New score from 1 to 10"),
    context: str = typer.Argument("", help="New rationale (max 100 ASCII chars)"),
    caller: str = CALLER_OPTION,
    height: Optional[int] = HEIGHT_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Change the score and rationale of an existing attestation."""
    ledger = open_ledger(_resolve_db(ctx, db))
    _run(ledger, lambda: ledger.update_attestation(
        caller, attestee, score, context, height=_next_height(ledger, height)
    ))
    console.print(f"[green]✓ Attestation {caller} → {attestee} now scores {score}[/]")


@app.command()
def endorse(
    ctx: typer.Context,
    identity: str = typer.Argument(..., help="Identity to endorse"),
    domain: str = typer.Argument(..., help="Domain name (max 20 ASCII chars)"),
    score: int = typer.Argument(..., help="Score from 1 to 10"),
    caller: str = CALLER_OPTION,
    height: Optional[int] = HEIGHT_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Endorse an identity you already attested to for a specific domain."""
    ledger = open_ledger(_resolve_db(ctx, db))
    _run(ledger, lambda: ledger.endorse_for_domain(
        caller, identity, domain, score, height=_next_height(ledger, height)
    ))
    console.print(f"[green]✓ {caller} endorsed {identity} for '{domain}' with {score}[/]")


@app.command("set-admin")
def set_admin(
    ctx: typer.Context,
    new_admin: str = typer.Argument(..., help="Principal that becomes admin"),
    caller: str = CALLER_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Hand the admin role to another principal (admin only)."""
    ledger = open_ledger(_resolve_db(ctx, db))
    _run(ledger, lambda: ledger.set_admin(caller, new_admin))
    console.print(f"[green]✓ Admin is now {new_admin}[/]")


@app.command("set-threshold")
def set_threshold(
    ctx: typer.Context,
    threshold: int = typer.Argument(..., help="Attestations needed to become verified"),
    caller: str = CALLER_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Change the verification threshold (admin only)."""
    ledger = open_ledger(_resolve_db(ctx, db))
    _run(ledger, lambda: ledger.set_verification_threshold(caller, threshold))
    console.print(f"[green]✓ Verification threshold is now {threshold}[/]")


@app.command()
def identity(
    ctx: typer.Context,
    principal: str = typer.Argument(..., help="Principal to look up"),
    db: Optional[Path] = DB_OPTION,
):
    """Show an identity record."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        record = ledger.get_identity_info(principal)
    finally:
        ledger.close()

    if record is None:
        console.print(f"[yellow]No identity registered for '{principal}'[/]")
        raise typer.Exit(1)

    status = "[green]verified[/]" if record.verified else "[yellow]unverified[/]"
    console.print(f"[bold cyan]#{record.id} {principal}[/] {status}")
    console.print(f"  registered at height {record.registration_height}")
    console.print(f"  attestations: {record.attestation_count}  score: {record.verification_score}")


@app.command()
def attestation(
    ctx: typer.Context,
    attester: str = typer.Argument(...),
    attestee: str = typer.Argument(...),
    db: Optional[Path] = DB_OPTION,
):
    """Show the attestation from ATTESTER to ATTESTEE."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        record = ledger.get_attestation(attester, attestee)
    finally:
        ledger.close()

    if record is None:
        console.print(f"[yellow]No attestation from '{attester}' to '{attestee}'[/]")
        raise typer.Exit(1)

    console.print(f"[bold cyan]{attester} → {attestee}[/] score {record.score} (height {record.timestamp})")
    if record.context:
        console.print(f"  {record.context}")


@app.command()
def reputation(
    ctx: typer.Context,
    principal: str = typer.Argument(..., help="Identity"),
    domain: str = typer.Argument(..., help="Domain name"),
    db: Optional[Path] = DB_OPTION,
):
    """Show the domain reputation of an identity."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        record = ledger.get_domain_reputation(principal, domain)
    finally:
        ledger.close()

    if record is None:
        console.print(f"[yellow]No '{domain}' reputation for '{principal}'[/]")
        raise typer.Exit(1)

    console.print(
        f"[bold cyan]{principal} / {domain}[/] score {record.score} "
        f"from {record.endorsement_count} endorsements (last at height {record.last_updated})"
    )


@app.command()
def identities(
    ctx: typer.Context,
    db: Optional[Path] = DB_OPTION,
):
    """List all registered identities."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        snap = ledger.snapshot()
    finally:
        ledger.close()

    if not snap.identities:
        console.print("[yellow]No identities registered yet.[/]")
        return

    table = Table(title="Registered Identities")
    table.add_column("ID")
    table.add_column("Principal")
    table.add_column("Attestations")
    table.add_column("Score")
    table.add_column("Verified")

    for principal, record in sorted(snap.identities.items(), key=lambda item: item[1].id):
        table.add_row(
            str(record.id),
            principal,
            str(record.attestation_count),
            str(record.verification_score),
            "yes" if record.verified else "no",
        )

    console.print(table)


@app.command()
def audit(
    ctx: typer.Context,
    db: Optional[Path] = DB_OPTION,
):
    """Check the stored state against the ledger invariants."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        result = LedgerVerifier().verify_from_storage(ledger.storage)
    finally:
        ledger.close()

    if result.is_valid:
        console.print("[green]✓ Ledger state is valid[/]")
        console.print(f"  {result.message}")
    else:
        console.print("[red]✗ Ledger audit failed[/]")
        for failure in result.failures:
            console.print(f"  • {escape(f'[{failure.key}]')} {failure.category}: {escape(failure.message)}")
        raise typer.Exit(1)


@app.command("hash")
def hash_state(
    ctx: typer.Context,
    db: Optional[Path] = DB_OPTION,
):
    """Print the SHA-256 of the canonical ledger state."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        digest = state_hash(ledger.snapshot())
    finally:
        ledger.close()
    console.print(digest)


@app.command()
def export(
    ctx: typer.Context,
    db: Optional[Path] = DB_OPTION,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: ledger-export.jsonl)"),
):
    """Export the ledger state as JSONL (one canonical record per line)."""
    ledger = open_ledger(_resolve_db(ctx, db))
    try:
        snap = ledger.snapshot()
    finally:
        ledger.close()

    out_path = output or Path("ledger-export.jsonl")
    count = 0
    with open(out_path, "w", encoding="utf-8") as f:
        for kind, payload in snap.records():
            f.write(canonical_json_str({"kind": kind, "record": payload}))
            f.write("\n")
            count += 1

    console.print(f"[green]Exported {count} records to {out_path}[/]")
    console.print("Format: JSONL — one canonical (RFC 8785) record per line")


if __name__ == "__main__":
    app()
