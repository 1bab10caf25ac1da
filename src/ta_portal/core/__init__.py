"""
Core module - Configuration, database, auth, errors and infrastructure clients.
"""

from ta_portal.core.config import get_settings, settings
from ta_portal.core.database import Base, close_db, get_db, init_db
from ta_portal.core.redis import close_redis, get_redis_client, init_redis
from ta_portal.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis_client",
    "init_redis",
    "close_redis",
    # Security
    "create_access_token",
    "decode_token",
]
