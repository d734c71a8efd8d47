"""
Check the PostgreSQL database used by the session store.
Run once before starting the API: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER fitbuddy WITH PASSWORD 'fitbuddy';
  CREATE DATABASE fitbuddy OWNER fitbuddy;
  GRANT ALL PRIVILEGES ON DATABASE fitbuddy TO fitbuddy;
  \\q

Then apply the schema: alembic upgrade head
"""

import sys

from sqlalchemy.exc import SQLAlchemyError

from fitsession.config import get_settings
from fitsession.core.database import Database


def main():
    settings = get_settings()
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("Database URL is not PostgreSQL. Skipping.")
        return

    database = Database(url)
    try:
        database.init()
        database.ping()
        print("PostgreSQL connection OK. Database exists.")
    except SQLAlchemyError as e:
        print(f"Cannot connect to PostgreSQL: {type(e).__name__}: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER fitbuddy WITH PASSWORD 'fitbuddy';\"")
        print("  psql -U postgres -c \"CREATE DATABASE fitbuddy OWNER fitbuddy;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE fitbuddy TO fitbuddy;\"")
        sys.exit(1)
    finally:
        database.shutdown()


if __name__ == "__main__":
    main()
