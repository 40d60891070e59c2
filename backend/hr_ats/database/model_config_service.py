"""
API Key 模型配置服务
每个 Key 最多一条生效配置：1 个主模型 + 最多 3 个回退模型
"""

import logging
from typing import List, Optional

from hr_ats.models.credential import ModelConfiguration

from .base import DatabaseManager, db_manager

logger = logging.getLogger(__name__)


class ModelConfigService:
    """模型配置服务"""

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    async def get_config(self, api_key_id: str) -> Optional[ModelConfiguration]:
        row = await self.db.execute_one('''
            SELECT api_key_id, primary_model, fallback_model_1, fallback_model_2,
                   fallback_model_3, is_active, notes
            FROM api_key_model_configs
            WHERE api_key_id = $1 AND is_active = TRUE
            ORDER BY updated_at DESC
            LIMIT 1
        ''', (api_key_id,))
        if not row:
            return None
        return ModelConfiguration(**row)

    async def get_fallback_order(self, api_key_id: str) -> List[str]:
        """返回按顺序尝试的模型列表；没有配置时返回空列表"""
        config = await self.get_config(api_key_id)
        if config is None:
            return []
        return config.fallback_order()

    async def create_or_update_config(
        self,
        api_key_id: str,
        primary_model: Optional[str] = None,
        fallback_model_1: Optional[str] = None,
        fallback_model_2: Optional[str] = None,
        fallback_model_3: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ModelConfiguration:
        """
        创建或更新 Key 的模型配置

        新建配置时必须提供主模型；更新时未提供的字段保持原值。

        Raises:
            ValueError: 新建配置但没有主模型
        """
        existing = await self.get_config(api_key_id)

        if existing is None:
            if not primary_model or not primary_model.strip():
                raise ValueError("创建模型配置时必须提供主模型")
            config = ModelConfiguration(
                api_key_id=api_key_id,
                primary_model=primary_model,
                fallback_model_1=fallback_model_1,
                fallback_model_2=fallback_model_2,
                fallback_model_3=fallback_model_3,
                notes=notes,
            )
            await self.db.execute_update('''
                INSERT INTO api_key_model_configs (
                    api_key_id, primary_model, fallback_model_1, fallback_model_2,
                    fallback_model_3, is_active, notes
                ) VALUES ($1, $2, $3, $4, $5, TRUE, $6)
            ''', (
                config.api_key_id, config.primary_model, config.fallback_model_1,
                config.fallback_model_2, config.fallback_model_3, config.notes,
            ))
            logger.info(f"[ModelConfig] Key {api_key_id} 模型配置已创建，主模型 {config.primary_model}")
            return config

        changes = {
            "primary_model": primary_model,
            "fallback_model_1": fallback_model_1,
            "fallback_model_2": fallback_model_2,
            "fallback_model_3": fallback_model_3,
            "notes": notes,
        }
        config = existing.model_copy(update={k: v for k, v in changes.items() if v is not None})
        # 重新校验主模型
        config = ModelConfiguration.model_validate(config.model_dump())

        await self.db.execute_update('''
            UPDATE api_key_model_configs
            SET primary_model = $2, fallback_model_1 = $3, fallback_model_2 = $4,
                fallback_model_3 = $5, notes = $6, updated_at = NOW()
            WHERE api_key_id = $1 AND is_active = TRUE
        ''', (
            api_key_id, config.primary_model, config.fallback_model_1,
            config.fallback_model_2, config.fallback_model_3, config.notes,
        ))
        logger.info(f"[ModelConfig] Key {api_key_id} 模型配置已更新，顺序 {config.fallback_order()}")
        return config

    async def delete_config(self, api_key_id: str) -> bool:
        """软删除：停用配置，之后该 Key 使用默认模型列表"""
        updated = await self.db.execute_update('''
            UPDATE api_key_model_configs
            SET is_active = FALSE, updated_at = NOW()
            WHERE api_key_id = $1 AND is_active = TRUE
        ''', (api_key_id,))
        if updated:
            logger.info(f"[ModelConfig] Key {api_key_id} 模型配置已停用")
        return updated > 0
