import argparse
import os
import sys

# Add the project root to sys.path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from membership.app_api import AppAPI
from membership.database import DB_FILE
from membership.database_manager import DatabaseManager
from membership.excel_service import ExcelImportError


def ensure_data_dir(db_path: str) -> None:
    """Creates the directory holding the database file if it is missing."""
    data_dir = os.path.dirname(db_path)
    if data_dir and not os.path.exists(data_dir):
        os.makedirs(data_dir)
        print(f"Created data directory: {data_dir}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Membership manager")
    parser.add_argument("--db", default=DB_FILE, help=f"SQLite database file (default: {DB_FILE})")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("stats", help="Show dashboard statistics")
    subparsers.add_parser("list", help="List members")
    export_parser = subparsers.add_parser("export", help="Export all members to a spreadsheet")
    export_parser.add_argument("file", help="Destination .xlsx or .csv file")
    import_parser = subparsers.add_parser("import", help="Import members from a spreadsheet")
    import_parser.add_argument("file", help="Source .xlsx or .csv file")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "stats"

    ensure_data_dir(args.db)
    with DatabaseManager.open(args.db) as db_manager:
        print(f"Database initialized at: {args.db}")
        api = AppAPI(db_manager)

        if command == "stats":
            for key, value in api.get_dashboard_stats().items():
                print(f"{key.replace('_', ' ').capitalize()}: {value}")
        elif command == "list":
            for member in api.get_members():
                print(
                    f"{member['id']:>4}  {member['name']:<25} {member['membership_type']:<9} "
                    f"{member['status']:<10} payments: {member['payment_count']}  "
                    f"due: {member['last_due_date'] or '-'}"
                )
        elif command == "export":
            result = api.export_to_file(None, args.file)
            print(f"Exported members to {result['path']}")
        elif command == "import":
            try:
                result = api.import_from_file(args.file)
            except ExcelImportError as e:
                print(f"Error: {e}")
                return 1
            print(f"Imported {result['imported_count']} members from {args.file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
