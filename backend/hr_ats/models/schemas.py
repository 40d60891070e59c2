"""
HTTP 接口请求/响应模型
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hr_ats.models.queue import QueueStatus


class ErrorResponse(BaseModel):
    """错误响应模型"""
    error: str = Field(..., description="错误类型")
    message: str = Field(..., description="错误信息")


class UploadFileResult(BaseModel):
    """单个简历的上传结果"""
    filename: str = Field(..., description="原始文件名")
    success: bool = Field(..., description="是否已加入分析队列")
    candidate_id: Optional[str] = Field(None, description="候选人ID")
    candidate_name: Optional[str] = Field(None, description="候选人姓名")
    error: Optional[str] = Field(None, description="失败原因")


class UploadResponse(BaseModel):
    """批量上传响应模型"""
    success: bool = Field(..., description="是否全部成功")
    message: str = Field(..., description="响应消息")
    total: int = Field(..., description="文件总数")
    succeeded: int = Field(..., description="成功数量")
    failed: int = Field(..., description="失败数量")
    results: List[UploadFileResult] = Field(default_factory=list)
    queue: Optional[QueueStatus] = Field(None, description="入队后的队列状态")


class ReanalyzeResponse(BaseModel):
    """重新分析响应模型"""
    success: bool = Field(..., description="分析是否成功")
    message: str = Field(..., description="响应消息")
    candidate: Optional[Dict[str, Any]] = Field(None, description="更新后的候选人")


class QueueCancelResponse(BaseModel):
    """取消队列响应模型"""
    success: bool
    message: str


class KeyPoolStatusResponse(BaseModel):
    """Key 池状态响应模型"""
    total: int = Field(..., description="Key 总数")
    usable: int = Field(..., description="当前可用数量")
    accounts: List[Dict[str, Any]] = Field(default_factory=list)


class ModelConfigRequest(BaseModel):
    """创建或更新 Key 模型配置的请求体；更新时未提供的字段保持原值"""
    primary_model: Optional[str] = Field(None, description="主模型，新建配置时必填")
    fallback_model_1: Optional[str] = Field(None, description="回退模型 1")
    fallback_model_2: Optional[str] = Field(None, description="回退模型 2")
    fallback_model_3: Optional[str] = Field(None, description="回退模型 3")
    notes: Optional[str] = Field(None, description="备注")


class ModelConfigResponse(BaseModel):
    """Key 模型配置"""
    api_key_id: str
    primary_model: str
    fallback_model_1: Optional[str] = None
    fallback_model_2: Optional[str] = None
    fallback_model_3: Optional[str] = None
    notes: Optional[str] = None
    fallback_order: List[str] = Field(default_factory=list, description="实际尝试顺序")
