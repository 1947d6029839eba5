# Overview: Flask CLI command group for ledger bootstrap, inspection, and maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to posledger (PowerShell: $env:FLASK_APP="posledger").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create the schema on the remote store and the local cache; report the mode.
# - python -m flask ledger status
#   Show persistence mode and the active shift of each section.
# - python -m flask ledger archive --section store [--month 2026-03] --actor admin
#   Archive a section's period and purge its shift history.
# - python -m flask ledger supplier-debt [--apply debt|payment --amount 25000 --note "Invoice 12"]
#   Show (or change) the supplier debt balance. Amounts are in cents.
# - python -m flask ledger verify-supplier-debt
#   Check the balance against its transaction trail.

import click
from flask.cli import with_appcontext

from .services import get_services
from .services.shift_service import format_cents
from .validation import SECTIONS


@click.group('ledger')
def ledger_group():
    """Ledger bootstrap, inspection and maintenance commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create tables on both stores and decide the persistence mode."""
    mode = get_services().gateway.initialize()
    click.echo(f"PASS Schema ready (mode: {mode})")


@ledger_group.command('status')
@with_appcontext
def status_cli():
    """Show persistence mode and active shifts."""
    services = get_services()
    status = services.gateway.status()
    click.echo(f"Mode: {status['mode']}")
    if status["reason"]:
        click.echo(f"   Reason: {status['reason']}")
        click.echo(f"   Since:  {status['degraded_at']}")

    click.echo("\n" + "=" * 72)
    click.echo(f"{'Section':<12} {'Shift':<38} {'Operator':<14} {'Total'}")
    click.echo("=" * 72)
    for section in SECTIONS:
        shift = services.shifts.get_active_shift(section)
        if shift is None:
            click.echo(f"{section:<12} {'-':<38} {'-':<14} -")
        else:
            click.echo(
                f"{section:<12} {shift.id:<38} {(shift.operator_name or '-'):<14} "
                f"{format_cents(shift.total_amount_cents)}"
            )
    click.echo("=" * 72 + "\n")


@ledger_group.command('archive')
@click.option('--section', type=click.Choice(SECTIONS), required=True, help='Section to archive')
@click.option('--month', help='Period key YYYY-MM (defaults to the current month)')
@click.option('--actor', default='cli', show_default=True, help='Recorded as archived_by')
@click.option('--purge-unpaid-debt', is_flag=True, help='Also purge unpaid customer purchases')
@click.option('--yes', is_flag=True, help='Confirm without prompting')
@with_appcontext
def archive_cli(section, month, actor, purge_unpaid_debt, yes):
    """
    Archive a section's period.

    Example:
        flask ledger archive --section store --month 2026-03 --yes
    """
    services = get_services()
    summary = services.archiver.summarize(section)
    click.echo(
        f"{section}: {summary.shifts_count} shifts, revenue {format_cents(summary.total_revenue_cents)}, "
        f"profit {format_cents(summary.total_profit_cents)}"
    )
    if not yes and not click.confirm("Archive and purge this history?"):
        click.echo("Aborted.")
        return

    try:
        archive = services.archiver.reset_period(
            section, actor=actor, month=month, keep_unpaid_debt=not purge_unpaid_debt
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Archived {archive.section} {archive.month}")
    click.echo(f"   Archive ID: {archive.id}")


@ledger_group.command('supplier-debt')
@click.option('--apply', 'txn_type', type=click.Choice(['debt', 'payment']), help='Record a transaction first')
@click.option('--amount', type=int, help='Amount in cents')
@click.option('--note', help='Transaction note')
@click.option('--actor', default='cli', show_default=True)
@with_appcontext
def supplier_debt_cli(txn_type, amount, note, actor):
    """
    Show the supplier debt balance, optionally applying a transaction.

    Example:
        flask ledger supplier-debt --apply payment --amount 50000 --note "Cash"
    """
    supplier = get_services().supplier
    if txn_type:
        if amount is None:
            raise click.UsageError("--amount is required with --apply")
        try:
            txn = supplier.apply_transaction(txn_type, amount, note, actor=actor)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Recorded {txn.type} of {format_cents(txn.amount_cents)} (applied {format_cents(txn.applied_cents)})")

    debt = supplier.get_balance()
    click.echo(f"Supplier debt: {format_cents(debt.amount_cents)}")
    click.echo(f"   Last updated: {debt.to_dict()['last_updated']} by {debt.updated_by}")


@ledger_group.command('verify-supplier-debt')
@with_appcontext
def verify_supplier_debt_cli():
    """Exit non-zero when the balance disagrees with its transactions."""
    if get_services().supplier.verify():
        click.echo("PASS Supplier debt matches its transaction trail")
        return
    click.echo("FAIL Supplier debt does not match its transaction trail")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
