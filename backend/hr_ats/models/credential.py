"""
API Key（账号）与模型配置数据模型
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from hr_ats.core.config import DEFAULT_MAX_REQUESTS


class Credential(BaseModel):
    """Key 池中的单个账号，状态只保存在进程内存中"""
    id: Optional[str] = Field(default=None, description="数据库中的 Key ID")
    api_key: str = Field(..., description="API Key")
    company_id: Optional[str] = Field(default=None, description="所属公司，None 表示全局 Key")
    provider: str = Field(default="together_ai", description="提供商")
    is_active: bool = Field(default=True, description="是否可用")
    request_count: int = Field(default=0, description="本轮请求计数")
    max_requests: int = Field(default=DEFAULT_MAX_REQUESTS, description="请求上限")
    last_used: Optional[datetime] = Field(default=None, description="最后使用时间")
    rate_limit_remaining: Optional[int] = Field(default=None, description="网关返回的剩余请求数")

    @property
    def is_usable(self) -> bool:
        return self.is_active and self.request_count < self.max_requests

    @property
    def key_preview(self) -> str:
        return f"{self.api_key[:8]}..."


class ModelConfiguration(BaseModel):
    """单个 Key 的模型配置：1 个主模型 + 最多 3 个回退模型"""
    api_key_id: str
    primary_model: str = Field(..., description="主模型")
    fallback_model_1: Optional[str] = None
    fallback_model_2: Optional[str] = None
    fallback_model_3: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None

    @field_validator("primary_model")
    @classmethod
    def _require_primary(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("主模型不能为空")
        return value.strip()

    def fallback_order(self) -> List[str]:
        """按顺序返回所有已配置的模型，跳过空槽位"""
        models = [
            self.primary_model,
            self.fallback_model_1,
            self.fallback_model_2,
            self.fallback_model_3,
        ]
        return [model for model in models if model and model.strip()]
