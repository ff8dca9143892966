#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
match_sessions.py

Joins a roster of people to the network sessions most likely belonging to them.

Input:
- One .xlsx/.xlsm workbook (positional argument, or prompted on stdin)
- Sheet 'Лист_1' (persons): columns 'ФИО' (full name) and 'Почта' (email)
- Sheet 'Лист1' (sessions): columns 'Сетевой код', 'Учетная запись', 'IP'
- Headers are looked up in row 1 by exact (trimmed) text.

Output:
- Matched_Results_<YYYYMMDD_HHmmss>.xlsx next to the input file
  (or in --out-folder), one sheet 'Matched Results':
  full name, email, computer name (network code), IP

Logs:
- Console + logs/session_matcher.log

Username rules:
- email:   'Ivan.Petrov@corp.com' -> 'ivan.petrov' (text before the first '@')
- account: 'CORP\\Ivan.Petrov'    -> 'ivan.petrov' (text after the first '\\')
- no usable separator -> the whole value, lowercased

Matching rules (per person, sessions scanned in sheet order, first hit wins):
- session username == person username
- person username is a substring of the lowercased session account
- session username is a substring of the lowercased person email

Substring hits can be false positives (a short username inside an unrelated
account). That is accepted: there is no scoring and no best-match search.

Dependencies:
- pandas
- openpyxl
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from pandas.api.types import is_scalar


# -------------
# Configuration
# -------------

PERSONS_SHEET = "Лист_1"
SESSIONS_SHEET = "Лист1"

# logical field -> literal header text in row 1
PERSON_COLUMNS: Dict[str, str] = {
    "full_name": "ФИО",
    "email": "Почта",
}
SESSION_COLUMNS: Dict[str, str] = {
    "network_code": "Сетевой код",
    "account": "Учетная запись",
    "ip": "IP",
}

OUTPUT_SHEET = "Matched Results"
OUTPUT_PREFIX = "Matched_Results_"
OUTPUT_HEADERS = ["ФИО", "Почта", "Имя компьютера", "IP"]
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

LOG_DIR = Path("logs")
LOG_FILE = "session_matcher.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

HEADER_FILL_COLOR = "D3D3D3"  # light gray
COLUMN_WIDTH_MIN = 8
COLUMN_WIDTH_MAX = 80

EMAIL_SEPARATOR = "@"
ACCOUNT_SEPARATOR = "\\"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_PATH = 2


# -------------
# Data classes
# -------------

@dataclass(frozen=True)
class PersonRecord:
    full_name: str
    email: str
    username: str


@dataclass(frozen=True)
class SessionRecord:
    network_code: str
    account: str
    ip: str
    username: str


@dataclass(frozen=True)
class MatchedRecord:
    full_name: str
    email: str
    network_code: str
    ip: str


# -------
# Errors
# -------

class SessionMatcherError(Exception):
    """Base class for failures that abort a run."""


class InvalidPathError(SessionMatcherError):
    """Input path is empty or does not point to an existing file."""


class MissingSheetError(SessionMatcherError):
    """A required worksheet is not present in the workbook."""


class MissingColumnError(SessionMatcherError):
    """A required header is not present in row 1 of a worksheet."""


# ----------
# Logging
# ----------

def setup_logging(debug: bool, log_dir: Path = LOG_DIR) -> logging.Logger:
    """
    Console + file logging for a run. Calling it again reuses the handlers
    already attached to the "session_matcher" logger.
    """
    logger = logging.getLogger("session_matcher")
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if debug else logging.INFO
    fmt = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in (
        logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ):
        handler.setLevel(level)
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    logger.debug(f"Logging to {(log_dir / LOG_FILE).resolve()}")
    return logger


# -------------------------
# Workbook / sheet reading
# -------------------------

def resolve_input_path(raw_path: Optional[str]) -> Path:
    """
    Validate the user-supplied workbook path.
    Raises InvalidPathError for an empty value or a path that is not a file.
    """
    text = (raw_path or "").strip()
    if not text:
        raise InvalidPathError("File not found or invalid path: no path given.")
    path = Path(text)
    if not path.is_file():
        raise InvalidPathError(f"File not found or invalid path: {path}")
    return path


def read_sheet(xls: pd.ExcelFile, sheet_name: str) -> pd.DataFrame:
    # header=None keeps row 1 as data. dtype=str gives str() of the stored value,
    # not Excel's displayed text: a number formatted "0012" reads as "12" and a
    # date as "2024-01-01 00:00:00".
    return pd.read_excel(
        xls,
        sheet_name=sheet_name,
        header=None,
        dtype=str,
        keep_default_na=False,
    )


def read_workbook(
    file_path: Path,
    persons_sheet: str,
    sessions_sheet: str,
    logger: logging.Logger,
) -> Dict[str, pd.DataFrame]:
    """
    Returns {"persons": raw_df, "sessions": raw_df}.
    The workbook is closed before this returns.
    """
    with pd.ExcelFile(file_path, engine="openpyxl") as xls:
        available = list(xls.sheet_names)
        logger.debug(f"{file_path.name}: sheets={available}")

        missing = [s for s in (persons_sheet, sessions_sheet) if s not in available]
        if missing:
            raise MissingSheetError(
                f"Required worksheets not found: {missing}. "
                f"Make sure both '{persons_sheet}' and '{sessions_sheet}' exist."
            )

        return {
            "persons": read_sheet(xls, persons_sheet),
            "sessions": read_sheet(xls, sessions_sheet),
        }


# -----------------------
# Username normalization
# -----------------------

def username_from_email(email: str) -> str:
    at = email.find(EMAIL_SEPARATOR)
    if at > 0:
        return email[:at].lower()
    return email.lower()


def username_from_account(account: str) -> str:
    sep = account.find(ACCOUNT_SEPARATOR)
    if 0 < sep < len(account) - 1:
        return account[sep + 1 :].lower()
    return account.lower()


def normalize_username(value: str, mode: str) -> str:
    """
    Lowercase join token for an identifier.
    mode="email"   -> local part before the first '@'
    mode="account" -> account name after the first '\\' (domain dropped)
    Falls back to the whole value, lowercased.
    """
    if mode == "email":
        return username_from_email(value)
    if mode == "account":
        return username_from_account(value)
    raise ValueError(f"Unknown username mode: {mode!r}")


# -------------------
# Record extraction
# -------------------

def is_na_scalar(v: Any) -> bool:
    """
    Safe NA check that never returns an array/Series.
    """
    if v is None:
        return True
    if is_scalar(v):
        return bool(pd.isna(v))
    return False


def cell_text(v: Any) -> str:
    return "" if is_na_scalar(v) else str(v).strip()


def locate_columns(
    raw: pd.DataFrame,
    required: Dict[str, str],
    sheet_name: str,
) -> Dict[str, int]:
    """
    Map each logical field to the position of its header in row 1.
    Header text must match exactly (case-sensitive, after trimming).
    If a header repeats, the rightmost occurrence wins.
    """
    positions: Dict[str, int] = {}
    if not raw.empty:
        header_row = [cell_text(v) for v in raw.iloc[0, :].tolist()]
        for col, header in enumerate(header_row):
            for field, expected in required.items():
                if header == expected:
                    positions[field] = col

    missing = [required[f] for f in required if f not in positions]
    if missing:
        raise MissingColumnError(
            f"Required columns not found in {sheet_name}. "
            f"Need {', '.join(repr(h) for h in required.values())}; "
            f"missing {', '.join(repr(h) for h in missing)}."
        )
    return positions


def extract_rows(
    raw: pd.DataFrame,
    required: Dict[str, str],
    sheet_name: str,
    logger: logging.Logger,
) -> List[Dict[str, str]]:
    """
    Read the required cells of every data row (row 2 onwards).
    A row is kept only if all of its required values are non-empty after trimming.
    Output keeps sheet order.
    """
    positions = locate_columns(raw, required, sheet_name)
    rows: List[Dict[str, str]] = []

    for r in range(1, len(raw)):
        values = {field: cell_text(raw.iat[r, col]) for field, col in positions.items()}
        if all(values.values()):
            rows.append(values)

    rows_in = max(0, len(raw) - 1)
    logger.debug(
        f"{sheet_name}: columns={positions} rows_in={rows_in} "
        f"rows_out={len(rows)} dropped={rows_in - len(rows)}"
    )
    return rows


def read_persons(
    raw: pd.DataFrame,
    sheet_name: str,
    logger: logging.Logger,
    columns: Optional[Dict[str, str]] = None,
) -> List[PersonRecord]:
    rows = extract_rows(raw, columns or PERSON_COLUMNS, sheet_name, logger)
    persons = [
        PersonRecord(
            full_name=row["full_name"],
            email=row["email"],
            username=normalize_username(row["email"], "email"),
        )
        for row in rows
    ]
    logger.info(f"{sheet_name}: read {len(persons)} person record(s)")
    return persons


def read_sessions(
    raw: pd.DataFrame,
    sheet_name: str,
    logger: logging.Logger,
    columns: Optional[Dict[str, str]] = None,
) -> List[SessionRecord]:
    rows = extract_rows(raw, columns or SESSION_COLUMNS, sheet_name, logger)
    sessions = [
        SessionRecord(
            network_code=row["network_code"],
            account=row["account"],
            ip=row["ip"],
            username=normalize_username(row["account"], "account"),
        )
        for row in rows
    ]
    logger.info(f"{sheet_name}: read {len(sessions)} session record(s)")
    return sessions


# ---------
# Matching
# ---------

def match_rule(person: PersonRecord, session: SessionRecord) -> Optional[str]:
    """
    Name of the first predicate satisfied by this pair, or None.
    The name is for logging only; any hit qualifies the session.
    """
    if session.username == person.username:
        return "exact"
    if person.username in session.account.lower():
        return "account_contains"
    if session.username in person.email.lower():
        return "email_contains"
    return None


def find_session(
    person: PersonRecord,
    sessions: Sequence[SessionRecord],
) -> Tuple[Optional[SessionRecord], Optional[str]]:
    """
    Earliest session (in sheet order) that satisfies any rule, with the rule
    that fired. (None, None) when nothing qualifies.
    """
    for session in sessions:
        rule = match_rule(person, session)
        if rule is not None:
            return session, rule
    return None, None


def match_records(
    persons: Sequence[PersonRecord],
    sessions: Sequence[SessionRecord],
    logger: logging.Logger,
) -> List[MatchedRecord]:
    """
    First-match join: every person gets the earliest session (in sheet order)
    that satisfies any rule. Persons with no qualifying session are skipped.
    Sessions must stay in sheet order: it is the only tie-break.
    """
    matched: List[MatchedRecord] = []
    unmatched = 0

    for person in persons:
        session, rule = find_session(person, sessions)
        if session is None:
            unmatched += 1
            logger.debug("No session for %r (username=%r)", person.full_name, person.username)
            continue

        logger.debug(
            "%r -> %r (%s, %s) rule=%s",
            person.username,
            session.account,
            session.network_code,
            session.ip,
            rule,
        )
        matched.append(
            MatchedRecord(
                full_name=person.full_name,
                email=person.email,
                network_code=session.network_code,
                ip=session.ip,
            )
        )

    logger.info(f"Matched {len(matched)} of {len(persons)} person(s); unmatched={unmatched}")
    return matched


# -------
# Output
# -------

def output_file_path(input_path: Path, out_folder: Optional[Path] = None, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    folder = out_folder if out_folder is not None else input_path.parent
    return folder / f"{OUTPUT_PREFIX}{stamp}.xlsx"


def matched_to_frame(matched: Sequence[MatchedRecord]) -> pd.DataFrame:
    rows = [[m.full_name, m.email, m.network_code, m.ip] for m in matched]
    return pd.DataFrame(rows, columns=OUTPUT_HEADERS)


def write_matched_workbook(
    matched: Sequence[MatchedRecord],
    output_path: Path,
    logger: logging.Logger,
) -> Path:
    """
    Write the matched rows to a single-sheet workbook.
    Header row: bold, light-gray fill. Column widths sized to content.
    """
    df = matched_to_frame(matched)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=OUTPUT_SHEET)
        ws = writer.sheets[OUTPUT_SHEET]

        header_font = Font(bold=True)
        header_fill = PatternFill(start_color=HEADER_FILL_COLOR, end_color=HEADER_FILL_COLOR, fill_type="solid")
        for c_idx in range(1, len(OUTPUT_HEADERS) + 1):
            cell = ws.cell(row=1, column=c_idx)
            cell.font = header_font
            cell.fill = header_fill

        for c_idx, col_name in enumerate(df.columns.tolist(), start=1):
            best = len(str(col_name))
            for v in df.iloc[:, c_idx - 1].tolist():
                best = max(best, len(str(v)))
            ws.column_dimensions[get_column_letter(c_idx)].width = max(COLUMN_WIDTH_MIN, min(best + 2, COLUMN_WIDTH_MAX))

    logger.info(f"Output file created: {output_path.resolve()}")
    logger.info(f"Total matched records: {len(matched)}")
    return output_path


# -------------------
# File-level pipeline
# -------------------

def process_file(
    file_path: Path,
    logger: logging.Logger,
    persons_sheet: str = PERSONS_SHEET,
    sessions_sheet: str = SESSIONS_SHEET,
    out_folder: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> Path:
    """
    Read both sheets, match, write the result workbook. Returns its path.
    Nothing is written unless matching completes.
    """
    logger.info(f"Processing file: {file_path.name}")
    sheets = read_workbook(file_path, persons_sheet, sessions_sheet, logger)

    persons = read_persons(sheets["persons"], persons_sheet, logger)
    sessions = read_sessions(sheets["sessions"], sessions_sheet, logger)

    matched = match_records(persons, sessions, logger)

    out_path = output_file_path(file_path, out_folder, now)
    return write_matched_workbook(matched, out_path, logger)


# -----
# Main
# -----

def prompt_for_path() -> str:
    try:
        return input("Enter the path to the Excel file: ")
    except EOFError:
        return ""


def wait_for_exit() -> None:
    try:
        input("Press Enter to exit...")
    except EOFError:
        pass


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Match roster persons to network sessions by username.")
    parser.add_argument("path", nargs="?", default=None, help="Input .xlsx/.xlsm workbook (prompted for if omitted)")
    parser.add_argument("--persons-sheet", default=PERSONS_SHEET, help=f"Sheet with persons (default: {PERSONS_SHEET})")
    parser.add_argument("--sessions-sheet", default=SESSIONS_SHEET, help=f"Sheet with sessions (default: {SESSIONS_SHEET})")
    parser.add_argument("--out-folder", default=None, help="Output folder for the result workbook (default: next to the input file)")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--no-pause", action="store_true", help="Do not wait for Enter before exiting")
    args = parser.parse_args(argv)

    logger = setup_logging(args.debug)
    logger.info("Excel Matcher Program")

    raw_path = args.path if args.path is not None else prompt_for_path()
    try:
        file_path = resolve_input_path(raw_path)
    except InvalidPathError as e:
        logger.error(str(e))
        return EXIT_INVALID_PATH

    out_folder = Path(args.out_folder) if args.out_folder else None

    status = EXIT_OK
    try:
        process_file(
            file_path=file_path,
            logger=logger,
            persons_sheet=args.persons_sheet,
            sessions_sheet=args.sessions_sheet,
            out_folder=out_folder,
        )
        logger.info("Processing completed successfully!")
    except SessionMatcherError as e:
        logger.error(f"Error: {e}")
        status = EXIT_FAILED
    except Exception as e:
        logger.exception(f"Error: {e}")
        status = EXIT_FAILED

    if not args.no_pause:
        wait_for_exit()
    return status


if __name__ == "__main__":
    sys.exit(main())
