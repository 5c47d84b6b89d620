from motor.motor_asyncio import AsyncIOMotorClient
import asyncio
import logging
from ..core.settings import settings

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db = None


async def connect(max_retries: int = 10, delay: float = 2.0):
    """Connect to MongoDB on startup with retry logic and create indexes."""
    global _client, _db

    for attempt in range(max_retries):
        try:
            _client = AsyncIOMotorClient(
                settings.MONGODB_URI,
                serverSelectionTimeoutMS=5000
            )
            # Actually test the connection with a ping
            await _client.admin.command('ping')
            _db = _client[settings.MONGODB_DB_NAME]
            logger.info("Connected to MongoDB database %s", settings.MONGODB_DB_NAME)

            await create_indexes(_db)
            return
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning("MongoDB connection attempt %d failed, retrying in %ss... (%s)", attempt + 1, delay, e)
                await asyncio.sleep(delay)
            else:
                logger.error("Failed to connect to MongoDB after %d attempts: %s", max_retries, e)
                raise


async def create_indexes(database):
    """Create the indexes the access filters and the status upsert rely on."""
    await database["users"].create_index("user_id", unique=True)
    await database["users"].create_index("email", unique=True)
    await database["users"].create_index("name")
    await database["users"].create_index("teams")

    await database["projects"].create_index("project_id", unique=True)
    await database["projects"].create_index("managers")

    await database["teams"].create_index("team_id", unique=True)
    await database["teams"].create_index("project_id")
    await database["teams"].create_index("name")
    await database["teams"].create_index("members")

    await database["questions"].create_index("question_id", unique=True)
    await database["questions"].create_index("text")
    await database["questions"].create_index("teams")

    # One status per user, team and calendar day
    await database["statuses"].create_index("status_id", unique=True)
    await database["statuses"].create_index(
        [("user_id", 1), ("team_id", 1), ("date", 1)], unique=True
    )
    await database["statuses"].create_index([("team_id", 1), ("date", -1)])
    await database["statuses"].create_index([("project_id", 1), ("date", -1)])

    logger.info("MongoDB indexes created")


async def close():
    """Close MongoDB connection on shutdown."""
    global _client, _db
    if _client:
        _client.close()
        _client = None
        _db = None
        logger.info("MongoDB connection closed")


def db():
    """Return the database instance. Call after connect()."""
    if _db is None:
        raise RuntimeError("Database not connected. Call connect() first.")
    return _db
