# src/cipherchat/init_db.py
"""Create the relay's database tables."""

from cipherchat.db.session import create_tables

if __name__ == "__main__":
    create_tables()
    print("Database initialized.")
