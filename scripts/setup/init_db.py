# scripts/setup/init_db.py
"""
Initialize the local cache — creates all tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from fleetgate.database import create_tables, engine
from fleetgate.config import settings
from sqlalchemy import inspect, text


def main():
    print("🗄️  Fleet Gate cache initialization")
    print("=" * 40)
    print(f"📡 Local cache: {settings.LOCAL_CACHE_URL}")
    print(f"📡 Directory:   {settings.DIRECTORY_URL or '(none — offline mode)'}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Cache connection OK")
    except Exception as e:
        print(f"❌ Cannot open the local cache: {e}")
        print("\nCheck LOCAL_CACHE_URL in .env")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    print("✅ All tables created")

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in cache ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    print("\n🎉 Cache ready! You can now start the backend:")
    print("   uvicorn fleetgate.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
