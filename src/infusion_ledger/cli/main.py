"""
Command-line interface for Infusion Ledger.

Provides commands for logging doses, managing the consumable inventory,
viewing monthly usage and moving data between devices.
"""

from datetime import date
from pathlib import Path

import typer

from infusion_ledger.domain.therapy import TherapyType
from infusion_ledger.infrastructure.storage.json_file import JsonFileStore
from infusion_ledger.infrastructure.storage.session import LedgerSession
from infusion_ledger.services.ledger import TherapyLedger
from infusion_ledger.services.notifications import NotificationSettingsService
from infusion_ledger.services.reporting import ReportService
from infusion_ledger.services.transfer import TransferService
from infusion_ledger.utils.exceptions import InfusionLedgerError
from infusion_ledger.utils.logging_config import get_logger, setup_logging
from infusion_ledger.utils.parameters import ParameterLoader
from infusion_ledger.utils.timezone_utils import SystemClock, parse_date

app = typer.Typer(help="Infusion Ledger - Therapy log and consumable inventory")

logger = get_logger(__name__)

CONFIG_OPTION = typer.Option("config/config.yaml", help="Path to configuration file")


def init_config(config_path: str = "config/config.yaml") -> ParameterLoader:
    """
    Initialize configuration and logging.

    Args:
        config_path: Path to configuration file.

    Returns:
        Parameter loader instance.
    """
    param_loader = ParameterLoader(config_path)
    setup_logging(param_loader.get_logging_config(), "infusion_ledger")
    return param_loader


def open_ledger(config_path: str) -> tuple[TherapyLedger, NotificationSettingsService]:
    """
    Build the ledger and reminder settings for the configured user.

    Args:
        config_path: Path to configuration file.

    Returns:
        Ledger and notification settings sharing one session.
    """
    param_loader = init_config(config_path)
    storage_config = param_loader.get_storage_config()
    clock = SystemClock(param_loader.get_clock_config().timezone)

    session = LedgerSession(
        JsonFileStore(storage_config.path),
        storage_config.user,
        key_prefix=storage_config.key_prefix,
        clock=clock,
    )
    return TherapyLedger(session), NotificationSettingsService(session)


def _fail(action: str, error: InfusionLedgerError) -> typer.Exit:
    logger.error(f"{action} failed: {error}")
    typer.echo(f"Error: {error}", err=True)
    return typer.Exit(code=1)


@app.command()
def status(config_path: str = CONFIG_OPTION) -> None:
    """
    Show today's dose and any low-stock alert.
    """
    try:
        ledger, _ = open_ledger(config_path)

        today_type = ledger.get_today_type()
        if today_type is None:
            typer.echo("No dose logged today")
        else:
            typer.echo(f"Today's dose: {today_type.value}")

        low_stock = ledger.get_low_stock_products()
        if low_stock:
            typer.echo(f"Reorder: {', '.join(p.name for p in low_stock)}")

    except InfusionLedgerError as e:
        raise _fail("Status", e) from e


@app.command()
def log(
    therapy_type: TherapyType = typer.Argument(..., help="Dose variant taken today"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Log today's dose and take its consumables out of stock.

    Only one dose can be logged per calendar day.
    """
    try:
        ledger, _ = open_ledger(config_path)
        outcome = ledger.log_dose(therapy_type)

        if not outcome.logged:
            typer.echo(f"A dose is already logged today ({ledger.get_today_type().value})")
            return

        typer.echo(f"Logged {therapy_type.value} dose for {outcome.event.day.isoformat()}")
        for category in outcome.skipped:
            typer.echo(f"  Warning: no {category.value} stock left to decrement")

        low_stock = ledger.get_low_stock_products()
        if low_stock:
            typer.echo(f"Reorder: {', '.join(p.name for p in low_stock)}")

    except InfusionLedgerError as e:
        raise _fail("Log", e) from e


@app.command()
def inventory(config_path: str = CONFIG_OPTION) -> None:
    """
    List the consumables in stock.
    """
    try:
        ledger, _ = open_ledger(config_path)

        for product in ledger.get_products():
            marker = "  LOW" if product.is_low_stock else ""
            typer.echo(
                f"{product.id:<10} {product.name:<28} {product.code:<8} "
                f"{product.stock:>4} (min {product.min_threshold}){marker}"
            )

    except InfusionLedgerError as e:
        raise _fail("Inventory", e) from e


@app.command()
def adjust(
    product_id: str = typer.Argument(..., help="Product identifier"),
    delta: int = typer.Argument(..., help="Units to add (negative to remove)"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Add or remove units of a product. Stock never goes below zero.
    """
    try:
        ledger, _ = open_ledger(config_path)

        if product_id not in {p.id for p in ledger.get_products()}:
            typer.echo(f"Unknown product: {product_id}", err=True)
            raise typer.Exit(code=1)

        ledger.adjust_stock(product_id, delta)
        product = next(p for p in ledger.get_products() if p.id == product_id)
        typer.echo(f"{product.name}: {product.stock} in stock")

    except InfusionLedgerError as e:
        raise _fail("Adjust", e) from e


@app.command("edit-product")
def edit_product(
    product_id: str = typer.Argument(..., help="Product identifier"),
    name: str | None = typer.Option(None, help="New display name"),
    code: str | None = typer.Option(None, help="New product code"),
    min_threshold: int | None = typer.Option(None, min=0, help="New reorder threshold"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Change a product's name, code or reorder threshold.
    """
    try:
        ledger, _ = open_ledger(config_path)

        updates = {
            key: value
            for key, value in {"name": name, "code": code, "min_threshold": min_threshold}.items()
            if value is not None
        }
        if not updates:
            typer.echo("Nothing to change")
            return

        ledger.update_product(product_id, updates)
        product = next((p for p in ledger.get_products() if p.id == product_id), None)
        if product is None:
            typer.echo(f"Unknown product: {product_id}", err=True)
            raise typer.Exit(code=1)

        typer.echo(f"{product.id}: {product.name} ({product.code}), min {product.min_threshold}")

    except InfusionLedgerError as e:
        raise _fail("Edit", e) from e


@app.command()
def delete(
    day: str = typer.Argument(..., help="Date of the dose to remove"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Remove the dose logged on a date.

    Stock and monthly usage are not restored.
    """
    try:
        try:
            target: date = parse_date(day)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="DAY") from e

        ledger, _ = open_ledger(config_path)
        removed = ledger.delete_event(target)

        if removed:
            typer.echo(f"Removed dose of {target.isoformat()} (stock and reports unchanged)")
        else:
            typer.echo(f"No dose logged on {target.isoformat()}")

    except InfusionLedgerError as e:
        raise _fail("Delete", e) from e


@app.command()
def reports(config_path: str = CONFIG_OPTION) -> None:
    """
    Show monthly usage, newest month first.
    """
    try:
        ledger, _ = open_ledger(config_path)
        summary = ReportService(ledger).monthly_summary()

        if summary.empty:
            typer.echo("No usage recorded yet")
            return

        typer.echo(summary.to_string(index=False))

    except InfusionLedgerError as e:
        raise _fail("Reports", e) from e


@app.command()
def reminder(
    enable: bool | None = typer.Option(None, "--enable/--disable", help="Turn the reminder on or off"),
    time: str | None = typer.Option(None, help="Reminder time, HH:MM"),
    text: str | None = typer.Option(None, help="Reminder message"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Show or change the daily reminder settings.
    """
    try:
        _, notifications = open_ledger(config_path)

        try:
            settings = notifications.update(enabled=enable, time=time, custom_text=text)
        except ValueError as e:
            raise typer.BadParameter(str(e)) from e

        state = "on" if settings.enabled else "off"
        typer.echo(f"Reminder {state} at {settings.time}: {settings.custom_text}")

    except InfusionLedgerError as e:
        raise _fail("Reminder", e) from e


@app.command()
def export(
    output_file: Path = typer.Argument(..., help="JSON file to write"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Export all of the user's data to a JSON file.
    """
    try:
        ledger, notifications = open_ledger(config_path)
        bundle = TransferService(ledger, notifications).write_export(output_file)
        typer.echo(
            f"Exported {len(bundle.therapy)} doses and {len(bundle.products)} products "
            f"to {output_file}"
        )

    except InfusionLedgerError as e:
        raise _fail("Export", e) from e


@app.command("import-data")
def import_data(
    input_file: Path = typer.Argument(..., help="JSON file written by export"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Replace the user's data with an exported JSON file.
    """
    try:
        ledger, notifications = open_ledger(config_path)
        service = TransferService(ledger, notifications)
        bundle = service.read_export(input_file)
        service.import_bundle(bundle)
        typer.echo(f"Imported {len(bundle.therapy)} doses and {len(bundle.products)} products")

    except InfusionLedgerError as e:
        raise _fail("Import", e) from e


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
    config_path: str = CONFIG_OPTION,
) -> None:
    """
    Delete all stored data of the configured user.
    """
    try:
        ledger, notifications = open_ledger(config_path)

        if not yes:
            typer.confirm(f"Delete all data of user {ledger.session.user}?", abort=True)

        TransferService(ledger, notifications).clear_user_data()
        typer.echo(f"Cleared data of user {ledger.session.user}")

    except InfusionLedgerError as e:
        raise _fail("Clear", e) from e


if __name__ == "__main__":
    app()
