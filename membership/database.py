import sqlite3

DB_FILE = "membership/data/members.db"


def create_database(db_name: str) -> sqlite3.Connection:
    """
    Connects to an SQLite database and creates the necessary tables and indexes
    if they don't exist. Foreign keys are switched on for the returned connection
    so that deleting a member cascades to its payments.
    Args:
        db_name (str): The name of the database file (e.g., 'members.db' or ':memory:').
    Raises:
        sqlite3.Error: If the database cannot be opened or the schema cannot be created.
    """
    conn = sqlite3.connect(db_name)
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        cursor = conn.cursor()

        # Create members table
        cursor.execute(
            """
        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            address TEXT,
            membership_type TEXT DEFAULT 'standard',
            status TEXT DEFAULT 'active',
            join_date DATETIME DEFAULT CURRENT_TIMESTAMP,
            notes TEXT
        );
        """
        )

        # Create payments table
        cursor.execute(
            """
        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            member_id INTEGER NOT NULL,
            amount REAL NOT NULL,
            payment_date DATETIME DEFAULT CURRENT_TIMESTAMP,
            payment_type TEXT DEFAULT 'membership',
            next_due_date DATETIME,
            notes TEXT,
            FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE
        );
        """
        )

        # Lookup paths used by the list, payment history and dashboard queries
        cursor.executescript(
            """
        CREATE INDEX IF NOT EXISTS idx_members_status ON members(status);
        CREATE INDEX IF NOT EXISTS idx_members_name ON members(name);
        CREATE INDEX IF NOT EXISTS idx_payments_member_id ON payments(member_id);
        CREATE INDEX IF NOT EXISTS idx_payments_due_date ON payments(next_due_date);
        """
        )
        conn.commit()
    except sqlite3.Error:
        conn.close()
        raise
    return conn
