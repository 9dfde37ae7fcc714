import logging
import os
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .models import DEFAULT_MEMBERSHIP_TYPE, DEFAULT_STATUS, Member

SHEET_NAME = "Members"

# (header, member field, column width) in export order
EXPORT_COLUMNS = [
    ("ID", "id", 5),
    ("Name", "name", 20),
    ("Email", "email", 25),
    ("Phone", "phone", 15),
    ("Address", "address", 30),
    ("Membership Type", "membership_type", 15),
    ("Status", "status", 10),
    ("Join Date", "join_date", 12),
    ("Last Due Date", "last_due_date", 12),
    ("Payment Count", "payment_count", 12),
    ("Notes", "notes", 30),
]

IMPORT_FIELDS = ("name", "email", "phone", "address", "membership_type", "status", "notes")


class ExcelImportError(Exception):
    """Raised when a spreadsheet cannot be read; the whole import is abandoned."""


def _normalize_header(header: Any) -> str:
    # "Membership Type", "membership_type" and "MEMBERSHIP TYPE" all become "membership type"
    return str(header).strip().lower().replace("_", " ")


HEADER_TO_FIELD = {_normalize_header(header): field for header, field, _ in EXPORT_COLUMNS}


def _clean(value: Any) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    # Blank cells count as missing; other text is kept exactly as written
    text = str(value)
    return text if text.strip() else None


def _is_csv(file_path: str) -> bool:
    return os.path.splitext(str(file_path))[1].lower() == ".csv"


class ExcelService:
    def export_members(self, members: Iterable[Any], file_path: str) -> None:
        """
        Writes one row per member to file_path, replacing any existing file.
        members may be MemberView objects or dicts with the same keys.
        A .csv path is written as plain CSV; anything else as a styled .xlsx workbook.
        """
        rows = []
        for member in members:
            data: Dict[str, Any] = asdict(member) if is_dataclass(member) else dict(member)
            row = {}
            for header, field, _ in EXPORT_COLUMNS:
                value = data.get(field)
                if field == "payment_count":
                    row[header] = value or 0
                else:
                    row[header] = "" if value is None else value
            rows.append(row)

        df = pd.DataFrame(rows, columns=[header for header, _, _ in EXPORT_COLUMNS])

        if _is_csv(file_path):
            df.to_csv(file_path, index=False)
        else:
            with pd.ExcelWriter(file_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
                sheet = writer.sheets[SHEET_NAME]

                header_font = Font(bold=True, color="FFFFFF")
                header_fill = PatternFill(start_color="4F81BD", end_color="4F81BD", fill_type="solid")
                border_style = Side(style="thin", color="000000")
                thin_border = Border(left=border_style, right=border_style, top=border_style, bottom=border_style)

                for col_num, (_, _, width) in enumerate(EXPORT_COLUMNS, 1):
                    cell = sheet.cell(row=1, column=col_num)
                    cell.font = header_font
                    cell.fill = header_fill
                    cell.border = thin_border
                    sheet.column_dimensions[get_column_letter(col_num)].width = width

        logging.info(f"Exported {len(df)} members to {file_path}.")

    def import_members(self, file_path: str) -> List[Member]:
        """
        Reads the first sheet of file_path (or the CSV) and returns candidate
        members. Headers are matched case-insensitively and either the display
        header ("Membership Type") or the field name ("membership_type") is
        accepted. Rows without a name are dropped.
        Nothing is written to the database here.
        Raises ExcelImportError if the file cannot be read.
        """
        try:
            if _is_csv(file_path):
                df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
            else:
                df = pd.read_excel(
                    file_path, sheet_name=0, dtype=str, keep_default_na=False, engine="openpyxl"
                )
        except Exception as e:
            logging.error(f"Error importing Excel file '{file_path}': {e}", exc_info=True)
            raise ExcelImportError(f"Failed to import Excel file: {e}") from e

        field_columns: Dict[str, List[Any]] = {}
        for column in df.columns:
            field = HEADER_TO_FIELD.get(_normalize_header(column))
            if field in IMPORT_FIELDS:
                field_columns.setdefault(field, []).append(column)

        members = []
        skipped = 0
        for record in df.to_dict(orient="records"):
            values = {}
            for field in IMPORT_FIELDS:
                cleaned = (_clean(record[column]) for column in field_columns.get(field, []))
                values[field] = next((value for value in cleaned if value), None)
            if not values["name"]:
                skipped += 1
                continue
            members.append(
                Member(
                    id=None,
                    name=values["name"],
                    email=values["email"],
                    phone=values["phone"],
                    address=values["address"],
                    membership_type=values["membership_type"] or DEFAULT_MEMBERSHIP_TYPE,
                    status=values["status"] or DEFAULT_STATUS,
                    notes=values["notes"],
                )
            )

        if skipped:
            logging.warning(f"Skipped {skipped} rows without a name in {file_path}.")
        logging.info(f"Read {len(members)} members from {file_path}.")
        return members
