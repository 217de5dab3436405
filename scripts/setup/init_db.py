"""
Initialize database — creates all tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from sqlalchemy import inspect, text
from camfleet.database import create_tables, engine
from camfleet.config import settings


def main():
    print("🗄️  camfleet DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    os.makedirs(settings.STORAGE_PATH, exist_ok=True)
    print(f"\n📼 Upload storage: {os.path.abspath(settings.STORAGE_PATH)}")

    print("\n🎉 Database ready! You can now start the coordinator:")
    print(f"   uvicorn camfleet.main:app --host 0.0.0.0 --port {settings.BACKEND_PORT}")


if __name__ == "__main__":
    main()
