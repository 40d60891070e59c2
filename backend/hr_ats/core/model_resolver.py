"""
模型解析：为某个 Key 返回按顺序尝试的模型列表（主模型 + 回退模型）
"""

import logging
from typing import List, Optional

from hr_ats.core.config import DEFAULT_MODELS

logger = logging.getLogger(__name__)


class ModelResolver:
    """按 Key 解析模型回退顺序"""

    def __init__(self, model_config_store=None, default_models: Optional[List[str]] = None):
        self.model_config_store = model_config_store
        self.default_models = list(DEFAULT_MODELS if default_models is None else default_models)
        if not self.default_models:
            raise ValueError("默认模型列表不能为空")

    async def resolve(self, credential_id: Optional[str]) -> List[str]:
        """
        返回模型列表，索引 0 为首先尝试的模型

        没有配置、配置为空或查询出错时，使用默认模型列表。
        """
        if not credential_id or self.model_config_store is None:
            return list(self.default_models)

        try:
            models = await self.model_config_store.get_fallback_order(credential_id)
        except Exception as e:
            logger.warning(f"[ModelResolver] 查询 Key {credential_id} 的模型配置失败，使用默认模型: {e}")
            return list(self.default_models)

        models = [model for model in (models or []) if model]
        if not models:
            return list(self.default_models)
        return models
