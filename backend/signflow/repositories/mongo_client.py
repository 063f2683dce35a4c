"""MongoDB Client - Connection, Collection Management and document helpers"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError
from pydantic import BaseModel

from ..config.settings import Settings, settings as default_settings
from ..utils.time import ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Collection names
REQUESTS_COLLECTION = "signature_requests"
SIGNERS_COLLECTION = "signature_signers"
AUDIT_COLLECTION = "signature_audit_log"
FIELD_CONFIG_COLLECTION = "field_configurations"
RATE_LIMITS_COLLECTION = "rate_limits"
NOTIFICATION_OUTBOX_COLLECTION = "notification_outbox"
TOTP_CONFIG_COLLECTION = "totp_configs"

# Process-wide client (one per process, shared by all repositories)
_client: Optional[PyMongoClient] = None


def get_client(config: Optional[Settings] = None) -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    config = config or default_settings
    if _client is None:
        logger.info(f"Connecting to MongoDB: {config.mongo_uri}")
        _client = PyMongoClient(
            config.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database(config: Optional[Settings] = None) -> Database:
    """Get the application database"""
    config = config or default_settings
    return get_client(config)[config.mongo_db]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed")


def create_indexes(db: Database) -> None:
    """Create all required indexes"""
    logger.info("Creating MongoDB indexes...")

    requests = db[REQUESTS_COLLECTION]
    requests.create_index("request_id", unique=True)
    requests.create_index([("initiated_by", ASCENDING), ("status", ASCENDING)])
    requests.create_index([("status", ASCENDING), ("expires_at", ASCENDING)])
    requests.create_index("created_at", background=True)

    signers = db[SIGNERS_COLLECTION]
    signers.create_index("signer_id", unique=True)
    signers.create_index([("request_id", ASCENDING), ("signing_order", ASCENDING)], unique=True)
    signers.create_index("signer_email")
    signers.create_index("user_id")

    audit = db[AUDIT_COLLECTION]
    audit.create_index("audit_event_id", unique=True)
    audit.create_index([("request_id", ASCENDING), ("timestamp", DESCENDING)])

    db[FIELD_CONFIG_COLLECTION].create_index("document_id", unique=True)
    db[RATE_LIMITS_COLLECTION].create_index(
        [("key", ASCENDING), ("window_start", ASCENDING)], unique=True
    )
    db[RATE_LIMITS_COLLECTION].create_index("expires_at", expireAfterSeconds=0)

    outbox = db[NOTIFICATION_OUTBOX_COLLECTION]
    outbox.create_index("notification_id", unique=True)
    outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])

    db[TOTP_CONFIG_COLLECTION].create_index("user_id", unique=True)

    logger.info("MongoDB indexes created successfully")


def health_check(db: Database) -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        db.client.admin.command("ping")
        return {
            "status": "healthy",
            "database": db.name,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": db.name,
            "error": str(e)
        }


def to_storage(value: Any) -> Any:
    """
    Convert a value into what BSON stores: enums to their values and
    datetimes to naive UTC (pymongo treats naive datetimes as UTC).
    """
    if isinstance(value, BaseModel):
        return to_storage(value.model_dump())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value).replace(tzinfo=None)
    if isinstance(value, dict):
        return {k: to_storage(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage(v) for v in value]
    return value


def to_document(model: BaseModel, id_field: str) -> Dict[str, Any]:
    """Dump a model for insertion, using its ID field as _id"""
    doc = to_storage(model)
    doc["_id"] = doc[id_field]
    return doc
