from motor.motor_asyncio import AsyncIOMotorClient

from config import Config
from logger import get_logger

log = get_logger("database")

class Database:
    client: AsyncIOMotorClient = None

db = Database()

async def get_database():
    if db.client is None:
        raise RuntimeError("Database not connected. Please check MongoDB connection settings.")
    return db.client[Config.DATABASE_NAME]

async def connect_to_mongo():
    """Connect to MongoDB and create indexes"""
    try:
        # Short timeouts so a bad URL fails fast at startup
        db.client = AsyncIOMotorClient(
            Config.MONGODB_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000
        )
        database = db.client[Config.DATABASE_NAME]

        await db.client.admin.command('ping')
        log.info("Connected to MongoDB", extra={"database": Config.DATABASE_NAME})

        await database["surveys"].create_index("id", unique=True)
        await database["surveys"].create_index("createdAt")
        await database["surveys"].create_index("status")
        await database["responses"].create_index("id", unique=True)
        await database["responses"].create_index("surveyId")
        await database["deliveries"].create_index("surveyId", unique=True)
        await database["pending_deliveries"].create_index("id", unique=True)
        await database["pending_deliveries"].create_index("sendAt")

        log.info("Database indexes created")
    except Exception:
        log.exception("Failed to connect to MongoDB; server will start but database operations will fail")
        # Don't raise - allow server to start
        db.client = None

async def close_mongo_connection():
    """Close MongoDB connection"""
    if db.client:
        db.client.close()
        db.client = None
        log.info("Closed MongoDB connection")
