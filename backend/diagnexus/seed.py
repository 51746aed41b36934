import asyncio
import logging
from sqlalchemy import select, func
from diagnexus.auth import hash_password
from diagnexus.database import Database
from diagnexus.models.user import User

logger = logging.getLogger("diagnexus.seed")

DEMO_USERS = [
    {"role": "Admin",   "name": "Alice Johnson", "email": "alice@example.com",    "password": "admin123"},
    {"role": "Doctor",  "name": "Dr. Smith",     "email": "smith@hospital.com",   "password": "docpass"},
    {"role": "Patient", "name": "John Doe",      "email": "john.doe@example.com", "password": "patientpass"},
]


async def seed_demo_users(database: Database) -> int:
    """Create the 3 demo accounts when the users table is empty. Idempotent."""
    async with database.sessionmaker() as session:
        count = await session.scalar(select(func.count(User.user_id)))
        if count:
            return 0

        admin = None
        for u in DEMO_USERS:
            password_hash = await asyncio.to_thread(hash_password, u["password"])
            user = User(
                role=u["role"],
                name=u["name"],
                email=u["email"],
                password_hash=password_hash,
                updated_by=admin.user_id if admin else None,
                is_active=True,
            )
            session.add(user)
            await session.flush()
            if admin is None:
                admin = user
        await session.commit()
    logger.info("Seeded %d demo users", len(DEMO_USERS))
    return len(DEMO_USERS)
