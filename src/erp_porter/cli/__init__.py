"""CLI for ERP backup, restore and CSV import.

Usage:
    erp-porter backup
    erp-porter --profile local restore backups/naqel-erp-backup-2026-01-15T10-20-30-123Z.json
    erp-porter restore backups/latest.json --yes
    erp-porter validate backups/latest.json
    erp-porter import-transactions transactions.csv --dry-run
    erp-porter import-sales-orders orders.csv
    erp-porter template sales-orders -o orders.csv

Commands:
    backup               - Export every collection to a JSON snapshot
    restore              - Restore a snapshot into the active profile
    validate             - Check a snapshot file without connecting
    import-transactions  - Import ledger transactions from CSV
    import-sales-orders  - Import sales orders (with line items) from CSV
    template             - Write a CSV import template
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from erp_porter.backup import (
    Snapshot,
    backup_database,
    load_snapshot,
    restore_database,
    validate_snapshot,
    write_snapshot,
)
from erp_porter.config import load_config
from erp_porter.errors import ErpPorterError
from erp_porter.factory import create_datastore, get_active_profile
from erp_porter.importing import (
    ImportPreview,
    Importer,
    SalesOrderImporter,
    TransactionImporter,
)

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if not verbose:
        # Keep HTTP client chatter out of normal runs
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _load(args: argparse.Namespace):
    """Load config and build the active profile's adapter."""
    config = load_config(args.config)
    name, profile = get_active_profile(config, args.profile)
    console.print(f"Profile: [bold cyan]{name}[/bold cyan] ({profile.provider})", style="dim")
    return config, create_datastore(profile)


# ============================================================================
# Output helpers
# ============================================================================


def _confirm_restore(snapshot: Snapshot) -> bool:
    console.print()
    console.print("[bold yellow]![/bold yellow] This will restore data into the active profile.")
    console.print(f"  Backup date: [bold]{snapshot.created_at or 'unknown'}[/bold]")
    console.print(
        f"  Created by:  [bold]{snapshot.created_by_email or snapshot.created_by or 'unknown'}[/bold]"
    )
    console.print(f"  Records:     {snapshot.total_records}")
    console.print("  Existing records with the same natural key will be updated.")
    console.print("  Collections restored before a failure are kept (no rollback).")
    return Confirm.ask("Continue?", default=False, console=console)


def _print_preview(preview: ImportPreview) -> None:
    console.print(preview.summary())
    if not preview.invalid_rows:
        return

    table = Table(title="Rows with errors", show_header=True, header_style="bold")
    table.add_column("Row", justify="right")
    table.add_column("Errors")
    for parsed in preview.invalid_rows:
        table.add_row(str(parsed.row), "\n".join(parsed.errors))
    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_backup(args: argparse.Namespace) -> int:
    config, store = _load(args)
    try:
        snapshot = await backup_database(store, store)
    finally:
        await store.close()

    path = write_snapshot(
        snapshot,
        output_dir=args.output_dir or config.backup.output_dir,
        product=config.backup.product,
        output_path=args.output,
    )

    table = Table(title="Backup", show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Records", justify="right")
    for name, records in snapshot.data.items():
        table.add_row(name, str(len(records)))
    console.print(table)
    console.print(f"[bold green]v[/bold green] Backup written to [cyan]{path}[/cyan]")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    try:
        snapshot = load_snapshot(args.backup_path)
    except (OSError, ErpPorterError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    config, store = _load(args)
    batch_size = args.batch_size or config.backup.batch_size
    try:
        summary = await restore_database(
            store,
            store,
            snapshot,
            confirm=None if args.yes else _confirm_restore,
            batch_size=batch_size,
        )
    finally:
        await store.close()

    if summary.status == "cancelled":
        console.print("Cancelled.")
        return 0

    table = Table(title="Restore", show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    for name, result in summary.collections.items():
        failed = f"[red]{result.failed}[/red]" if result.failed else "0"
        table.add_row(
            name, str(result.inserted), str(result.updated), str(result.skipped), failed
        )
    console.print(table)

    for name, result in summary.collections.items():
        for error in result.errors:
            console.print(f"  [yellow]{name}[/yellow]: {error}")

    style = "green" if summary.status == "success" else "yellow" if summary.status == "partial" else "red"
    console.print(f"[bold {style}]{summary.message}[/bold {style}]")
    return 0 if summary.status == "success" else 1


async def _async_import(args: argparse.Namespace, kind: str) -> int:
    try:
        text = Path(args.csv_path).read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    _, store = _load(args)
    try:
        importer: Importer
        if kind == "transactions":
            importer = TransactionImporter(await store.fetch_all("accounts"))
        else:
            importer = SalesOrderImporter(
                await store.fetch_all("customers"), await store.fetch_all("products")
            )

        preview = importer.parse(text)
        _print_preview(preview)

        if args.dry_run:
            return 0 if preview.can_commit else 1
        if not preview.can_commit:
            console.print(
                "[bold red]x[/bold red] Please fix all errors before importing. "
                "All rows must be valid."
            )
            return 1

        inserted = await importer.commit(store, store, preview)
    finally:
        await store.close()

    console.print(f"[bold green]v[/bold green] Imported {len(inserted)} {importer.entity}")
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def _run(coro) -> int:
    try:
        return asyncio.run(coro)
    except (ErpPorterError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1


def cmd_backup(args: argparse.Namespace) -> int:
    """Export every collection of the active profile to a snapshot file."""
    return _run(_async_backup(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a snapshot file into the active profile.

    Asks for confirmation (showing backup date and creator) unless
    ``--yes`` is given.

    Returns:
        0 on full success or when cancelled, 1 otherwise.
    """
    return _run(_async_restore(args))


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a snapshot file.

    Returns:
        0 on valid snapshot (warnings allowed), 1 on errors.
    """
    report = validate_snapshot(args.backup_path)

    console.print(f"Validating: [cyan]{args.backup_path}[/cyan]")

    if report.errors:
        console.print(f"\n[bold red]x[/bold red] INVALID - Found {len(report.errors)} errors:")
        for error in report.errors:
            console.print(f"   - {error}")

    if report.warnings:
        console.print(f"\n[yellow]![/yellow] Found {len(report.warnings)} warnings:")
        for warning in report.warnings:
            console.print(f"   - {warning}")

    if report.valid:
        suffix = " (with warnings)" if report.warnings else ""
        console.print(f"\n[bold green]v[/bold green] Backup is valid{suffix}")
        return 0
    console.print("\n[bold red]x[/bold red] Backup is invalid")
    return 1


def cmd_import_transactions(args: argparse.Namespace) -> int:
    """Import ledger transactions from a CSV file."""
    return _run(_async_import(args, "transactions"))


def cmd_import_sales_orders(args: argparse.Namespace) -> int:
    """Import sales orders from a CSV file."""
    return _run(_async_import(args, "sales-orders"))


def cmd_template(args: argparse.Namespace) -> int:
    """Write a CSV template to a file or stdout."""
    importer: Importer
    if args.kind == "transactions":
        importer = TransactionImporter([])
    else:
        importer = SalesOrderImporter([], [])
    template = importer.template()

    if args.output:
        Path(args.output).write_text(template, encoding="utf-8")
        console.print(f"[bold green]v[/bold green] Template written to [cyan]{args.output}[/cyan]")
    else:
        sys.stdout.write(template)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="erp-porter",
        description="ERP backup, restore and CSV import",
    )
    parser.add_argument("--config", "-c", help="Path to erp.toml (default: ERP_PORTER_CONFIG or ./erp.toml)")
    parser.add_argument("--profile", "-p", help="Profile name from erp.toml (default: ERP_PROFILE)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup command
    p_backup = subparsers.add_parser("backup", help="Create a snapshot of every collection")
    p_backup.add_argument("--output", "-o", help="Output file path (default: generated name)")
    p_backup.add_argument("--output-dir", help="Directory for the generated file name")
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore from a snapshot")
    p_restore.add_argument("backup_path", help="Path to snapshot JSON file")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.add_argument(
        "--batch-size", type=int, default=None, help="Records per progress group"
    )
    p_restore.set_defaults(func=cmd_restore)

    # validate command
    p_validate = subparsers.add_parser("validate", help="Validate a snapshot file")
    p_validate.add_argument("backup_path", help="Path to snapshot JSON file")
    p_validate.set_defaults(func=cmd_validate)

    # import commands
    p_tx = subparsers.add_parser("import-transactions", help="Import transactions from CSV")
    p_tx.add_argument("csv_path", help="Path to CSV file")
    p_tx.add_argument("--dry-run", action="store_true", help="Parse and report without importing")
    p_tx.set_defaults(func=cmd_import_transactions)

    p_so = subparsers.add_parser("import-sales-orders", help="Import sales orders from CSV")
    p_so.add_argument("csv_path", help="Path to CSV file")
    p_so.add_argument("--dry-run", action="store_true", help="Parse and report without importing")
    p_so.set_defaults(func=cmd_import_sales_orders)

    # template command
    p_template = subparsers.add_parser("template", help="Write a CSV import template")
    p_template.add_argument("kind", choices=["transactions", "sales-orders"])
    p_template.add_argument("--output", "-o", help="Output file (default: stdout)")
    p_template.set_defaults(func=cmd_template)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
