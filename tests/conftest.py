"""Shared pytest fixtures and utilities for Bozor ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from bozor_ledger import constants, core_logic, data_manager  # noqa: E402
from bozor_ledger.domain import CreateProductCommand  # noqa: E402
from bozor_ledger.setup_workbook import create_master_workbook  # noqa: E402
from bozor_ledger.storage import LedgerStore  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
# A Wednesday evening, after the report cutoff, in the local offset.
DEFAULT_MOMENT = datetime(2025, 3, 12, 19, 30).astimezone()
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "ShopName = {shop_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Reports]\n"
    "SubmissionHour = {submission_hour}\n\n"
    "[Inventory]\n"
    "LowStockThreshold = {low_stock_threshold}\n\n"
    "[Concurrency]\n"
    "LockTimeout = 2\n"
)


class FixedClock:
    """Controllable time source injected into the ledgers."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment

    def advance(self, **delta: float) -> None:
        self.moment = self.moment + timedelta(**delta)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    shop_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(DEFAULT_MOMENT)


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore(lock_timeout=2.0)


@pytest.fixture
def services(store: LedgerStore, clock: FixedClock) -> core_logic.LedgerServices:
    """The four ledger components wired around a fresh store."""

    return core_logic.build_services(store, clock=clock)


@pytest.fixture
def make_product(services: core_logic.LedgerServices) -> Callable[..., data_manager.ProductRow]:
    """Factory creating products through the product ledger."""

    def _create(
        name: str = "Tomatoes",
        *,
        purchase_price: str = "2.00",
        selling_price: str = "3.00",
        stock: str = "100",
    ) -> data_manager.ProductRow:
        return services.products.create(
            CreateProductCommand(
                name=name,
                purchase_price=Decimal(purchase_price),
                selling_price=Decimal(selling_price),
                initial_stock=Decimal(stock),
            )
        )

    return _create


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "bozor_ledger.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        shop_name: str = "Test Bozor",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        submission_hour: int = 18,
        low_stock_threshold: str = "10",
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                shop_name=shop_name,
                schema_version=schema_version,
                submission_hour=submission_hour,
                low_stock_threshold=low_stock_threshold,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            shop_name=shop_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path, clock: FixedClock) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file, clock=clock)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="bozor-cli", description="Bozor CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")
