"""Command-line entry points for the Bozor ledger.

All orchestration in this module is limited to argparse wiring, turning
arguments into ledger commands and printing results. Keeping the CLI thin lets
tests and any other front end reuse the same parser configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .domain import CreateProductCommand, RecordSaleCommand, StockAdjustmentCommand, SubmitReportCommand, local_day
from .errors import BusinessRuleViolation


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = False


def decimal_arg(raw: str) -> Decimal:
    """argparse ``type`` that parses a decimal number."""
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a decimal number: {raw!r}") from exc
    if not value.is_finite():
        raise argparse.ArgumentTypeError(f"not a finite number: {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bozor-cli",
        description="Command-line tools for the Bozor wholesale ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.ini (default: the nearest config.ini in this or a parent directory).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _simple_spec(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    arguments: Callable[[argparse.ArgumentParser], None] = lambda parser: None,
    *,
    mutates: bool = False,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, mutates=mutates)


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and stock adjustments."""

    def add_product_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--purchase-price", type=decimal_arg, required=True)
        parser.add_argument("--selling-price", type=decimal_arg, required=True)
        parser.add_argument("--initial-stock", type=decimal_arg, default=Decimal("0"))

    def sale_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=decimal_arg, required=True)
        parser.add_argument("--price-per-kg", type=decimal_arg, required=True)

    def adjust_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--delta", type=decimal_arg, required=True)
        parser.add_argument("--reason", required=True)

    def set_stock_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--stock", type=decimal_arg, required=True)
        parser.add_argument("--reason", default="Stock count")

    def submit_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today.")

    specs = {
        "add-product": _simple_spec("add-product", "Register a new product.", run_add_product, add_product_args, mutates=True),
        "sale": _simple_spec("sale", "Record a sale.", run_sale, sale_args, mutates=True),
        "adjust-stock": _simple_spec("adjust-stock", "Apply a signed stock adjustment.", run_adjust_stock, adjust_args, mutates=True),
        "set-stock": _simple_spec("set-stock", "Set stock to an absolute level.", run_set_stock, set_stock_args, mutates=True),
        "submit-report": _simple_spec("submit-report", "Submit the daily report.", run_submit_report, submit_args, mutates=True),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as the dashboard and reports."""

    def sales_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", type=date.fromisoformat, default=None)

    def report_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today.")

    def low_stock_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--threshold", type=decimal_arg, default=None)

    def summary_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--start", type=date.fromisoformat, required=True)
        parser.add_argument("--end", type=date.fromisoformat, required=True)

    specs = {
        "products": _simple_spec("products", "List products, newest first.", run_products_report),
        "sales": _simple_spec("sales", "List sales, most recent first.", run_sales_report, sales_args),
        "dashboard": _simple_spec("dashboard", "Show today's dashboard figures.", run_dashboard_report),
        "weekly": _simple_spec("weekly", "Show sales and profit for the last seven days.", run_weekly_report),
        "report": _simple_spec("report", "Show the stored daily report.", run_daily_report, report_args),
        "low-stock": _simple_spec("low-stock", "List products running low.", run_low_stock_report, low_stock_args),
        "summary": _simple_spec("summary", "Summarize sales over a date range.", run_summary_report, summary_args),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Load the ledger named by ``--config``, or by the nearest ``config.ini`` upwards.

    Raises:
        RuntimeError: If the workbook was written for another schema version.
    """
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Run the executor registered for ``args.command``.

    Raises:
        KeyError: If no command was parsed or it has no executor.
    """
    name = getattr(args, "command", None)
    if name not in command_table:
        raise KeyError(f"Unknown command: {name}")
    log.debug("Running command '%s'", name)
    return command_table[name].execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Index command specs by name, refusing duplicates."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        table.setdefault(spec.name, spec)
        if table[spec.name] is not spec:
            raise ValueError(f"Command '{spec.name}' is registered twice")
    return table


def translate_add_product(args: argparse.Namespace) -> CreateProductCommand:
    return CreateProductCommand(
        name=args.name,
        purchase_price=args.purchase_price,
        selling_price=args.selling_price,
        initial_stock=args.initial_stock,
    )


def translate_sale(args: argparse.Namespace) -> RecordSaleCommand:
    return RecordSaleCommand(product_id=args.product_id, quantity=args.quantity, price_per_kg=args.price_per_kg)


def translate_adjust_stock(args: argparse.Namespace) -> StockAdjustmentCommand:
    return StockAdjustmentCommand(product_id=args.product_id, delta=args.delta, reason=args.reason)


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.services_for(context).products.create(translate_add_product(args))
    print(f"{product.product_id}\t{product.name}\tstock={product.stock}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    sale = core_logic.services_for(context).sales.record_sale(translate_sale(args))
    print(f"{sale.sale_id}\ttotal={sale.total_amount}\tprofit={sale.profit}")
    return 0


def run_adjust_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    new_stock = core_logic.services_for(context).products.adjust_stock(translate_adjust_stock(args))
    print(f"{args.product_id}\tstock={new_stock}")
    return 0


def run_set_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    new_stock = core_logic.services_for(context).products.set_stock(args.product_id, args.stock, args.reason)
    print(f"{args.product_id}\tstock={new_stock}")
    return 0


def run_submit_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.services_for(context).reports.submit(SubmitReportCommand(date=args.date))
    print(
        f"{report.date.isoformat()}\tsales={report.total_sales}\tprofit={report.total_profit}"
        f"\tcost={report.total_cost}\tsubmitted_at={report.submitted_at.isoformat()}"
    )
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    services = core_logic.services_for(context)
    for product in services.products.list():
        print(
            f"{product.product_id}\t{product.name}\tbuy={product.purchase_price}\tsell={product.selling_price}"
            f"\tstock={product.stock}\t{services.products.stock_status(product).value}"
        )
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    sales_ledger = core_logic.services_for(context).sales
    sales = sales_ledger.list_sales() if args.date is None else sales_ledger.list_sales_by_date(args.date)
    for sale in sales:
        print(
            f"{sale.sale_id}\t{sale.sale_date.isoformat()}\t{sale.product_id}\tqty={sale.quantity}"
            f"\tprice={sale.price_per_kg}\ttotal={sale.total_amount}\tprofit={sale.profit}"
        )
    return 0


def run_dashboard_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    stats = core_logic.services_for(context).aggregator.dashboard_stats()
    print(f"Daily sales:   {stats.daily_sales}")
    print(f"Daily profit:  {stats.daily_profit}")
    print(f"Daily cost:    {stats.daily_cost}")
    print(f"Daily margin:  {stats.daily_margin}%")
    print(f"Weekly profit: {stats.weekly_profit}")
    print(f"Products:      {stats.product_count}")
    return 0


def run_weekly_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for point in core_logic.services_for(context).aggregator.weekly_series():
        print(f"{point.date.isoformat()}\t{point.day}\tsales={point.sales}\tprofit={point.profit}")
    return 0


def run_daily_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    day = args.date if args.date is not None else local_day(context.clock())
    report = core_logic.services_for(context).reports.get_report(day)
    submitted = report.submitted_at.isoformat() if report.submitted_at is not None else "-"
    print(
        f"{report.date.isoformat()}\tsales={report.total_sales}\tprofit={report.total_profit}"
        f"\tcost={report.total_cost}\tsubmitted={report.is_submitted}\tsubmitted_at={submitted}"
    )
    return 0


def run_low_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for product in core_logic.services_for(context).products.low_stock(args.threshold):
        print(f"{product.product_id}\t{product.name}\tstock={product.stock}")
    return 0


def run_summary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = core_logic.services_for(context).aggregator.summarize_range(args.start, args.end)
    print(f"Period:       {summary.start.isoformat()} .. {summary.end.isoformat()}")
    print(f"Sales:        {summary.total_sales}")
    print(f"Profit:       {summary.total_profit}")
    print(f"Cost:         {summary.total_cost}")
    print(f"Margin:       {summary.margin}%")
    print(f"Transactions: {summary.sale_count}")
    print(f"Average sale: {summary.average_sale}")
    return 0


EXIT_CODES: tuple[tuple[type[BaseException], int], ...] = (
    (BusinessRuleViolation, 2),
    (FileNotFoundError, 3),
)


def handle_cli_error(error: Exception) -> int:
    """Log ``error`` and return its exit code: 2 for rule violations, 3 for missing files, else 1."""
    log.error("%s: %s", type(error).__name__, error)
    return next((code for kind, code in EXIT_CODES if isinstance(error, kind)), 1)


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Save the workbook after a write command.

    Raises:
        RuntimeError: If the workbook file is read-only or locked by Excel.
    """
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(f"Cannot save ledger workbook: {error}") from error


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for ``bozor-cli``; returns the process exit code."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:
        return handle_cli_error(error)
