"""Create the modeler's database tables."""

from quota_modeler.db.session import create_tables

if __name__ == "__main__":
    create_tables()
    print("Database initialized.")
