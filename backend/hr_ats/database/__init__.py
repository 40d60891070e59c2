"""
数据库模块 - PostgreSQL
"""

from .config import POSTGRES_CONFIG, DB_NAME
from .init_db import init_database
from .base import DatabaseManager, db_manager

__all__ = [
    'POSTGRES_CONFIG',
    'DB_NAME',
    'init_database',
    'DatabaseManager',
    'db_manager',
]
