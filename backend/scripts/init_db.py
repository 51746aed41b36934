"""
Initialize the database: create all tables and seed the demo accounts.
Run with: python -m scripts.init_db [--no-seed]
"""

import argparse
import asyncio
from diagnexus.config import get_settings
from diagnexus.database import Database
from diagnexus.logging_config import configure_logging
from diagnexus.seed import seed_demo_users


async def init(seed: bool = True):
    settings = get_settings()
    configure_logging(settings.log_level)
    database = Database(settings)
    print("Creating database tables...")
    try:
        await database.create_all()
        print("All tables created successfully.")
        if seed:
            created = await seed_demo_users(database)
            print(f"Seeded {created} demo users." if created else "Users already present, skipping seed.")
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create DiagNexus tables")
    parser.add_argument("--no-seed", action="store_true", help="Skip demo account seeding")
    args = parser.parse_args()
    asyncio.run(init(seed=not args.no_seed))
