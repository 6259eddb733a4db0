"""Create an empty Bozor ledger workbook.

Used by the ``bozor-setup`` console script and by the test fixtures.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from . import data_manager, log


HEADER_FONT = Font(bold=True)


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Write a workbook holding one sheet per entry of ``sheet_columns``.

    Each sheet gets a bold header row and nothing else.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    target = Path(destination).expanduser().resolve()
    if target.exists() and not overwrite:
        raise FileExistsError(f"Ledger workbook already exists: {target}")

    workbook = openpyxl.Workbook()
    placeholder = workbook.active
    for sheet_name, columns in sheet_columns.items():
        sheet = workbook.create_sheet(title=sheet_name)
        sheet.append(list(columns))
        for header in sheet[1]:
            header.font = HEADER_FONT
    if placeholder is not None:
        workbook.remove(placeholder)

    data_manager.save_workbook(workbook, target)
    log.info("Created ledger workbook '%s' with sheets %s", target, ", ".join(sheet_columns))
    return target


def run_from_config(config_path: Optional[Path] = None, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in the resolved ``config.ini``."""

    resolved = data_manager.find_config_file(config_path)
    parser = data_manager.read_config(resolved)
    settings = data_manager.parse_settings(parser, base_path=resolved.parent)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bozor-setup", description="Create an empty Bozor ledger workbook.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.ini (default: the nearest config.ini in this or a parent directory)",
    )
    parser.add_argument("--force", action="store_true", help="Replace an existing workbook.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        output_path = run_from_config(args.config, overwrite=args.force)
    except FileExistsError as exc:
        log.error("%s (pass --force to replace it)", exc)
        return 1
    except (FileNotFoundError, KeyError, ValueError, OSError) as exc:
        log.error("Ledger setup failed: %s", exc)
        return 1

    print(f"Created ledger workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
