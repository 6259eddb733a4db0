"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from bozor_ledger import cli, core_logic
from bozor_ledger.domain import (
    CreateProductCommand,
    RecordSaleCommand,
    StockAdjustmentCommand,
)
from bozor_ledger.errors import BusinessRuleViolation, InsufficientStockError


WRITE_COMMANDS = {
    "add-product",
    "sale",
    "adjust-stock",
    "set-stock",
    "submit-report",
}

READ_COMMANDS = {
    "products",
    "sales",
    "dashboard",
    "weekly",
    "report",
    "low-stock",
    "summary",
}

# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    """build_parser should set user-facing program metadata."""

    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "bozor-cli"
    assert "Bozor" in (parser.description or "")


def test_configure_subcommands_registers_every_command(cli_parser):
    command_table = cli.configure_subcommands(cli_parser)
    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_register_write_commands_mark_mutations(subparsers_action):
    """Only write commands should trigger a workbook save."""

    specs = cli.register_write_commands(subparsers_action)
    assert set(specs) == WRITE_COMMANDS
    assert all(isinstance(spec, cli.CommandSpec) and spec.mutates for spec in specs.values())


def test_register_read_commands_are_read_only(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)
    assert set(specs) == READ_COMMANDS
    assert not any(spec.mutates for spec in specs.values())
    for name in READ_COMMANDS:
        assert name in subparsers_action.choices


def test_sale_command_parses_decimal_arguments():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    args = parser.parse_args(["sale", "--product-id", "P-1", "--quantity", "2.5", "--price-per-kg", "3.10"])

    assert args.command == "sale"
    assert args.quantity == Decimal("2.5")
    assert args.price_per_kg == Decimal("3.10")


def test_submit_report_parses_optional_date():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    assert parser.parse_args(["submit-report"]).date is None
    assert parser.parse_args(["submit-report", "--date", "2025-03-11"]).date == date(2025, 3, 11)


def test_add_product_defaults_initial_stock():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    args = parser.parse_args(["add-product", "--name", "Figs", "--purchase-price", "4", "--selling-price", "6"])
    assert args.initial_stock == Decimal("0")


@pytest.mark.parametrize("raw", ["abc", "NaN", "inf"])
def test_decimal_arg_rejects_non_numbers(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.decimal_arg(raw)


def test_invalid_decimal_exits_with_usage_error(capsys):
    parser = cli.build_parser()
    cli.configure_subcommands(parser)
    with pytest.raises(SystemExit) as excinfo:
        parser.parse_args(["sale", "--product-id", "P-1", "--quantity", "lots", "--price-per-kg", "1"])
    assert excinfo.value.code == 2
    assert "not a decimal number" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Runtime context helpers
# ---------------------------------------------------------------------------


def test_load_runtime_context_uses_provided_path(config_file):
    """load_runtime_context should load settings from the specified config path."""

    context = cli.load_runtime_context(config_file)
    assert context.settings.shop_name == "Test Bozor"


def test_load_runtime_context_discovers_config_by_default(monkeypatch):
    """Without --config the search for config.ini is left to the runtime layer."""

    sentinel_context = object()
    seen = {}

    def fake_loader(path: Path | None) -> object:
        seen["path"] = path
        return sentinel_context

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)
    monkeypatch.setattr(core_logic, "ensure_schema_version", lambda context: None)

    assert cli.load_runtime_context() is sentinel_context
    assert seen["path"] is None


def test_load_runtime_context_checks_schema(config_factory):
    bundle = config_factory(schema_version="0.1.0")
    with pytest.raises(RuntimeError):
        cli.load_runtime_context(bundle.config_path)


# ---------------------------------------------------------------------------
# Dispatch helpers
# ---------------------------------------------------------------------------


def test_dispatch_command_invokes_executor(runtime_context):
    seen = {}

    def execute(context, args):
        seen["context"] = context
        return 0

    spec = cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), execute)
    result = cli.dispatch_command(runtime_context, argparse.Namespace(command="alpha"), {"alpha": spec})

    assert result == 0
    assert seen["context"] is runtime_context


def test_dispatch_command_handles_unknown_commands(runtime_context):
    with pytest.raises(KeyError):
        cli.dispatch_command(runtime_context, argparse.Namespace(command="unknown"), {})


def test_build_command_table_detects_duplicate_commands():
    """build_command_table should guard against duplicate command names."""

    specs = [
        cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), lambda c, a: 0),
        cli.CommandSpec("alpha", "Duplicate", lambda s: s.add_parser("alpha"), lambda c, a: 0),
    ]
    with pytest.raises(ValueError):
        cli.build_command_table(specs)


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


def test_translate_add_product_returns_command():
    args = argparse.Namespace(
        name="Figs",
        purchase_price=Decimal("4.00"),
        selling_price=Decimal("6.00"),
        initial_stock=Decimal("12"),
    )
    assert cli.translate_add_product(args) == CreateProductCommand(
        "Figs", Decimal("4.00"), Decimal("6.00"), Decimal("12")
    )


def test_translate_sale_returns_sale_command():
    args = argparse.Namespace(product_id="P-1", quantity=Decimal("3"), price_per_kg=Decimal("2.50"))
    assert cli.translate_sale(args) == RecordSaleCommand("P-1", Decimal("3"), Decimal("2.50"))


def test_translate_adjust_stock_returns_adjustment():
    args = argparse.Namespace(product_id="P-1", delta=Decimal("-2"), reason="Spoiled")
    assert cli.translate_adjust_stock(args) == StockAdjustmentCommand("P-1", Decimal("-2"), "Spoiled")


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def _seed_product(context: core_logic.RuntimeContext, stock: str = "100"):
    return core_logic.services_for(context).products.create(
        CreateProductCommand("Tomatoes", Decimal("2.00"), Decimal("3.00"), Decimal(stock))
    )


def test_run_add_product_prints_new_id(runtime_context, capsys):
    args = argparse.Namespace(
        name="Figs",
        purchase_price=Decimal("4.00"),
        selling_price=Decimal("6.00"),
        initial_stock=Decimal("12"),
    )
    assert cli.run_add_product(runtime_context, args) == 0

    product_id, name, stock = capsys.readouterr().out.strip().split("\t")
    assert product_id.startswith("P-")
    assert name == "Figs"
    assert stock == "stock=12.0"


def test_run_sale_records_sale(runtime_context, capsys):
    product = _seed_product(runtime_context)
    args = argparse.Namespace(product_id=product.product_id, quantity=Decimal("10"), price_per_kg=Decimal("3.00"))

    assert cli.run_sale(runtime_context, args) == 0

    assert "total=30.00\tprofit=10.00" in capsys.readouterr().out
    assert runtime_context.store.get_product(product.product_id).stock == Decimal("90")


def test_run_sale_propagates_business_errors(runtime_context):
    product = _seed_product(runtime_context, stock="5")
    args = argparse.Namespace(product_id=product.product_id, quantity=Decimal("6"), price_per_kg=Decimal("3.00"))
    with pytest.raises(InsufficientStockError):
        cli.run_sale(runtime_context, args)


def test_run_adjust_and_set_stock(runtime_context, capsys):
    product = _seed_product(runtime_context, stock="10")

    cli.run_adjust_stock(
        runtime_context, argparse.Namespace(product_id=product.product_id, delta=Decimal("-2.5"), reason="Spoiled")
    )
    cli.run_set_stock(
        runtime_context, argparse.Namespace(product_id=product.product_id, stock=Decimal("40"), reason="Count")
    )

    lines = capsys.readouterr().out.splitlines()
    assert lines == [f"{product.product_id}\tstock=7.5", f"{product.product_id}\tstock=40.0"]


def test_run_submit_and_show_report(runtime_context, capsys):
    product = _seed_product(runtime_context)
    core_logic.services_for(runtime_context).sales.record_sale(
        RecordSaleCommand(product.product_id, Decimal("10"), Decimal("3.00"))
    )

    cli.run_submit_report(runtime_context, argparse.Namespace(date=None))
    cli.run_daily_report(runtime_context, argparse.Namespace(date=None))

    submitted, shown = capsys.readouterr().out.splitlines()
    assert submitted.startswith("2025-03-12\tsales=30.00\tprofit=10.00\tcost=20.00")
    assert "submitted=True" in shown


def test_run_daily_report_missing_date(runtime_context):
    with pytest.raises(BusinessRuleViolation):
        cli.run_daily_report(runtime_context, argparse.Namespace(date=date(2025, 1, 1)))


def test_run_read_reports_print_rows(runtime_context, capsys):
    product = _seed_product(runtime_context, stock="12")
    core_logic.services_for(runtime_context).sales.record_sale(
        RecordSaleCommand(product.product_id, Decimal("4"), Decimal("3.00"))
    )

    cli.run_products_report(runtime_context, argparse.Namespace())
    cli.run_sales_report(runtime_context, argparse.Namespace(date=date(2025, 3, 12)))
    cli.run_low_stock_report(runtime_context, argparse.Namespace(threshold=None))
    output = capsys.readouterr().out.splitlines()

    assert output[0].endswith("\tstock=8.0\tMEDIUM")
    assert "qty=4.0" in output[1]
    assert output[2] == f"{product.product_id}\tTomatoes\tstock=8.0"


def test_run_dashboard_weekly_and_summary(runtime_context, capsys):
    product = _seed_product(runtime_context)
    core_logic.services_for(runtime_context).sales.record_sale(
        RecordSaleCommand(product.product_id, Decimal("10"), Decimal("3.00"))
    )

    cli.run_dashboard_report(runtime_context, argparse.Namespace())
    dashboard = capsys.readouterr().out
    assert "Daily margin:  33.3%" in dashboard
    assert "Products:      1" in dashboard

    cli.run_weekly_report(runtime_context, argparse.Namespace())
    weekly = capsys.readouterr().out.splitlines()
    assert len(weekly) == 7
    assert weekly[-1] == "2025-03-12\tWednesday\tsales=30.00\tprofit=10.00"

    cli.run_summary_report(runtime_context, argparse.Namespace(start=date(2025, 3, 6), end=date(2025, 3, 12)))
    summary = capsys.readouterr().out
    assert "Average sale: 30.00" in summary


# ---------------------------------------------------------------------------
# Error handling and persistence
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "error, expected",
    [
        (BusinessRuleViolation("invalid"), 2),
        (InsufficientStockError("not enough"), 2),
        (FileNotFoundError("missing"), 3),
        (ValueError("bad value"), 1),
    ],
)
def test_handle_cli_error_returns_exit_code(error: Exception, expected: int, caplog: pytest.LogCaptureFixture):
    """handle_cli_error should convert exceptions into exit codes."""

    caplog.set_level("ERROR")
    assert cli.handle_cli_error(error) == expected
    assert any(str(error) in record.getMessage() for record in caplog.records)


def test_persist_workbook_handles_read_only_workbooks(runtime_context, monkeypatch):
    def fake_persist(_: core_logic.RuntimeContext) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(cli.core_logic, "persist_context", fake_persist)
    with pytest.raises(RuntimeError, match="read-only"):
        cli.persist_workbook(runtime_context)


# ---------------------------------------------------------------------------
# Program entry point
# ---------------------------------------------------------------------------


def test_main_persists_write_commands(config_file, capsys):
    """A write command run through main is visible to the next invocation."""

    exit_code = cli.main(
        [
            "--config",
            str(config_file),
            "add-product",
            "--name",
            "Quince",
            "--purchase-price",
            "1.50",
            "--selling-price",
            "2.25",
            "--initial-stock",
            "30",
        ]
    )
    assert exit_code == 0
    product_id = capsys.readouterr().out.split("\t")[0]

    assert cli.main(["--config", str(config_file), "sale", "--product-id", product_id, "--quantity", "4", "--price-per-kg", "2.25"]) == 0
    capsys.readouterr()

    assert cli.main(["--config", str(config_file), "products"]) == 0
    assert "stock=26.0" in capsys.readouterr().out


def test_main_does_not_persist_read_commands(monkeypatch, runtime_context):
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)
    monkeypatch.setattr(
        cli, "persist_workbook", lambda _: (_ for _ in ()).throw(AssertionError("should not persist"))
    )
    assert cli.main(["dashboard"]) == 0


def test_main_maps_business_errors_to_exit_code(config_file):
    exit_code = cli.main(
        ["--config", str(config_file), "sale", "--product-id", "P-missing", "--quantity", "1", "--price-per-kg", "1"]
    )
    assert exit_code == 2

    context = cli.load_runtime_context(config_file)
    assert context.store.all_sales() == []


def test_main_missing_config_returns_file_error(tmp_path):
    assert cli.main(["--config", str(tmp_path / "absent.ini"), "products"]) == 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    """Return the set of registered sub-command names for assertion helpers."""

    actions = getattr(parser, "_subparsers", None)
    if not actions:
        return set()
    group_actions = actions._group_actions  # type: ignore[attr-defined]
    if not group_actions:
        return set()
    return set(group_actions[0].choices)  # type: ignore[index]


def test_main_finds_config_in_parent_directory(config_factory, monkeypatch, capsys):
    bundle = config_factory(make_relative=True)
    nested = bundle.directory / "invoices" / "2025"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert cli.main(["low-stock"]) == 0
    assert capsys.readouterr().out == ""
