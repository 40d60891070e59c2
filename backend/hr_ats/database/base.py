"""
PostgreSQL 数据库操作基类
"""

import asyncpg
import logging
from typing import Optional, List, Dict, Any
from contextlib import asynccontextmanager

from .config import POSTGRES_CONFIG

logger = logging.getLogger(__name__)


class DatabaseManager:
    """PostgreSQL 连接池管理器"""

    def __init__(self, config: Optional[dict] = None, min_size: int = 2, max_size: int = 10):
        self.config = config or POSTGRES_CONFIG
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None
        logger.info(f"数据库管理器初始化: {self.config['host']}:{self.config['port']}")

    async def connect(self):
        """建立 PostgreSQL 连接池"""
        if not self._pool:
            self._pool = await asyncpg.create_pool(
                host=self.config["host"],
                port=self.config["port"],
                user=self.config["user"],
                password=self.config["password"],
                database=self.config["database"],
                min_size=self.min_size,
                max_size=self.max_size,
            )
            logger.info("PostgreSQL 连接池已建立")

    async def disconnect(self):
        """关闭连接池"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("数据库连接已关闭")

    @asynccontextmanager
    async def get_connection(self):
        """
        获取数据库连接（上下文管理器）

        Usage:
            async with db.get_connection() as conn:
                rows = await conn.fetch("SELECT * FROM candidates WHERE project_id = $1", project_id)
        """
        if not self._pool:
            await self.connect()
        async with self._pool.acquire() as conn:
            yield conn

    async def execute_query(self, sql: str, params: tuple = None) -> List[Dict[str, Any]]:
        """执行查询并返回结果列表"""
        async with self.get_connection() as conn:
            rows = await conn.fetch(sql, *(params or ()))
            return [dict(row) for row in rows]

    async def execute_one(self, sql: str, params: tuple = None) -> Optional[Dict[str, Any]]:
        """执行查询并返回单个结果"""
        async with self.get_connection() as conn:
            row = await conn.fetchrow(sql, *(params or ()))
            return dict(row) if row else None

    async def execute_update(self, sql: str, params: tuple = None) -> int:
        """执行更新/插入/删除操作，返回受影响的行数"""
        async with self.get_connection() as conn:
            result = await conn.execute(sql, *(params or ()))
            # 解析返回的 "INSERT 0 1" 或 "UPDATE 1" 格式
            parts = result.split()
            return int(parts[-1]) if parts and parts[-1].isdigit() else 0


# 全局数据库管理器实例
db_manager = DatabaseManager()
