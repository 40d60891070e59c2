"""
API Key 路由
Key 池状态，以及每个 Key 的模型配置（主模型 + 回退模型）
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from hr_ats.api.deps import get_container
from hr_ats.core.container import AppContainer
from hr_ats.models.credential import ModelConfiguration
from hr_ats.models.schemas import (
    KeyPoolStatusResponse,
    ModelConfigRequest,
    ModelConfigResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/api-keys", tags=["API Key"])


def _to_response(config: ModelConfiguration) -> ModelConfigResponse:
    return ModelConfigResponse(
        api_key_id=config.api_key_id,
        primary_model=config.primary_model,
        fallback_model_1=config.fallback_model_1,
        fallback_model_2=config.fallback_model_2,
        fallback_model_3=config.fallback_model_3,
        notes=config.notes,
        fallback_order=config.fallback_order(),
    )


def get_model_config_store(container: AppContainer = Depends(get_container)):
    if container.model_config_store is None:
        raise HTTPException(
            status_code=503,
            detail={"error": "ModelConfigUnavailable", "message": "模型配置存储未启用"},
        )
    return container.model_config_store


@router.get("/pool-status", response_model=KeyPoolStatusResponse)
async def get_pool_status(container: AppContainer = Depends(get_container)):
    """Key 池状态（只显示 Key 前 8 位）"""
    accounts = container.key_pool.get_accounts_status()
    usable = sum(
        1 for account in accounts
        if account["isActive"] and account["requestCount"] < account["maxRequests"]
    )
    return KeyPoolStatusResponse(total=len(accounts), usable=usable, accounts=accounts)


@router.get("/{api_key_id}/model-config", response_model=ModelConfigResponse)
async def get_model_config(api_key_id: str, store=Depends(get_model_config_store)):
    config = await store.get_config(api_key_id)
    if config is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "ModelConfigNotFound", "message": f"Key {api_key_id} 没有模型配置，使用默认模型"},
        )
    return _to_response(config)


@router.put("/{api_key_id}/model-config", response_model=ModelConfigResponse)
async def save_model_config(
    api_key_id: str,
    request: ModelConfigRequest,
    store=Depends(get_model_config_store),
):
    """创建或更新模型配置，新建时必须提供主模型"""
    try:
        config = await store.create_or_update_config(api_key_id, **request.model_dump())
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "InvalidModelConfig", "message": str(e)},
        )
    return _to_response(config)


@router.delete("/{api_key_id}/model-config")
async def delete_model_config(api_key_id: str, store=Depends(get_model_config_store)):
    """停用模型配置，之后该 Key 使用默认模型列表"""
    if not await store.delete_config(api_key_id):
        raise HTTPException(
            status_code=404,
            detail={"error": "ModelConfigNotFound", "message": f"Key {api_key_id} 没有模型配置"},
        )
    logger.info(f"Key {api_key_id} 的模型配置已停用")
    return {"success": True, "message": "模型配置已停用"}
