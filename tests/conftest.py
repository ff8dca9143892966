"""Pytest configuration and shared workbook fixtures."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from openpyxl import Workbook


def pytest_sessionstart() -> None:
    """Add project root to sys.path so the flat module imports without install."""
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("session_matcher.tests")


@pytest.fixture
def make_workbook(tmp_path: Path) -> Callable[..., Path]:
    """Build an .xlsx file from {sheet name: rows} (first row is the header)."""

    def _make(sheets: Dict[str, List[List[object]]], name: str = "input.xlsx", folder: Optional[Path] = None) -> Path:
        wb = Workbook()
        wb.remove(wb.active)
        for sheet_name, rows in sheets.items():
            ws = wb.create_sheet(sheet_name)
            for row in rows:
                ws.append(row)
        path = (folder or tmp_path) / name
        wb.save(path)
        return path

    return _make
