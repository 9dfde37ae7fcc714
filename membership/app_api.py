import logging
import sqlite3
from dataclasses import asdict, fields
from typing import Any, Dict, Iterable, List, Optional

from .database_manager import DatabaseManager
from .excel_service import ExcelService
from .models import Member, Payment

MEMBER_FIELDS = {f.name for f in fields(Member)} - {"id", "join_date"}
PAYMENT_FIELDS = {f.name for f in fields(Payment)} - {"id"}


def _pick(data: Dict[str, Any], allowed: set, *required: str) -> Dict[str, Any]:
    # Derived columns sent back by the UI are dropped; missing required keys
    # become None so the NOT NULL constraints report them
    picked = {k: v for k, v in data.items() if k in allowed}
    for key in required:
        picked.setdefault(key, None)
    return picked


class AppAPI:
    """
    API layer for the membership manager.
    Acts as a bridge between the UI and the database/spreadsheet layers:
    takes plain dicts in and hands plain dicts back.
    """

    def __init__(self, db_manager: DatabaseManager, excel_service: Optional[ExcelService] = None) -> None:
        self.db_manager: DatabaseManager = db_manager
        self.excel_service: ExcelService = excel_service or ExcelService()

    # Member operations
    def get_members(self) -> List[Dict[str, Any]]:
        return [asdict(member) for member in self.db_manager.get_all_members_for_view()]

    def add_member(self, data: Dict[str, Any]) -> Dict[str, Any]:
        member = Member(id=None, **_pick(data, MEMBER_FIELDS, "name"))
        return asdict(self.db_manager.add_member(member))

    def update_member(self, member_id: int, data: Dict[str, Any]) -> bool:
        member = Member(id=member_id, **_pick(data, MEMBER_FIELDS, "name"))
        return self.db_manager.update_member(member_id, member)

    def delete_member(self, member_id: int) -> bool:
        return self.db_manager.delete_member(member_id)

    # Payment operations
    def get_payments(self, member_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return [asdict(payment) for payment in self.db_manager.get_payments(member_id)]

    def add_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payment = Payment(id=None, **_pick(data, PAYMENT_FIELDS, "member_id", "amount"))
        return asdict(self.db_manager.add_payment(payment))

    def get_dashboard_stats(self) -> Dict[str, int]:
        return asdict(self.db_manager.get_dashboard_stats())

    # Spreadsheet transfer
    def export_to_file(self, members: Optional[Iterable[Any]], file_path: Optional[str]) -> Dict[str, Any]:
        """
        Exports members (all members when None) to file_path.
        An empty path means the save dialog was cancelled.
        """
        if not file_path:
            return {"success": False}
        if members is None:
            members = self.db_manager.get_all_members_for_view()
        self.excel_service.export_members(members, file_path)
        return {"success": True, "path": file_path}

    def import_from_file(self, file_path: Optional[str]) -> Dict[str, Any]:
        """
        Adds every named row of the spreadsheet as a new member.
        Rows the database rejects are logged and skipped; only the number of
        members actually added is reported.
        ExcelImportError from an unreadable file is left to the caller.
        """
        if not file_path:
            return {"success": False}
        candidates = self.excel_service.import_members(file_path)
        imported_count = 0
        for member in candidates:
            try:
                self.db_manager.add_member(member)
                imported_count += 1
            except sqlite3.Error as e:
                logging.warning(f"Skipping imported row for '{member.name}': {e}")
        logging.info(f"Imported {imported_count} of {len(candidates)} members from {file_path}.")
        return {"success": True, "imported_count": imported_count}
