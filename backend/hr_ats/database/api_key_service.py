"""
API Key 存储服务
Key 池通过这里读取可用 Key，并回写使用次数
"""

import logging
from typing import Any, Dict, List, Optional

from .base import DatabaseManager, db_manager

logger = logging.getLogger(__name__)

_KEY_COLUMNS = "id, key, name, company_id, provider, is_active, usage_count, last_used_at"


class ApiKeyService:
    """API Key 存储服务"""

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    async def list_active(self, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        读取可用 Key

        Args:
            company_id: 公司 ID；为 None 时返回所有可用 Key

        Returns:
            Key 记录列表，按使用次数升序
        """
        if company_id:
            return await self.db.execute_query(f'''
                SELECT {_KEY_COLUMNS} FROM api_keys
                WHERE is_active = TRUE AND company_id = $1
                ORDER BY usage_count ASC, last_used_at ASC NULLS FIRST
            ''', (company_id,))

        return await self.db.execute_query(f'''
            SELECT {_KEY_COLUMNS} FROM api_keys
            WHERE is_active = TRUE
            ORDER BY usage_count ASC, last_used_at ASC NULLS FIRST
        ''')

    async def list_active_global(self) -> List[Dict[str, Any]]:
        """读取不属于任何公司的全局 Key"""
        return await self.db.execute_query(f'''
            SELECT {_KEY_COLUMNS} FROM api_keys
            WHERE is_active = TRUE AND company_id IS NULL
            ORDER BY usage_count ASC, last_used_at ASC NULLS FIRST
        ''')

    async def increment_usage(self, api_key: str) -> None:
        """使用次数 +1 并刷新最后使用时间"""
        updated = await self.db.execute_update('''
            UPDATE api_keys
            SET usage_count = usage_count + 1, last_used_at = NOW(), updated_at = NOW()
            WHERE key = $1
        ''', (api_key,))
        if updated == 0:
            logger.debug(f"[ApiKeyService] Key {api_key[:8]}... 不在数据库中（可能来自环境变量）")
