"""
候选人相关的 API 路由
- 批量上传简历并加入分析队列
- 重新分析单个候选人
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile

from hr_ats.api.deps import get_container
from hr_ats.core.container import AppContainer
from hr_ats.core.exceptions import CandidateNotFoundError, NoAvailableCredentialError
from hr_ats.models.schemas import ReanalyzeResponse, UploadFileResult, UploadResponse
from hr_ats.services.file_service import FileServiceError, FileSizeExceededError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/candidates", tags=["候选人"])


@router.post("/upload/{project_id}", response_model=UploadResponse)
async def upload_cvs(
    project_id: str,
    files: List[UploadFile] = File(...),
    x_company_id: Optional[str] = Header(None, alias="X-Company-ID"),
    container: AppContainer = Depends(get_container),
):
    """
    上传一份或多份简历，创建候选人并加入项目分析队列

    单个文件失败不影响其他文件；分析结果通过 WebSocket 推送。
    """
    try:
        project = await container.candidate_store.get_project(project_id, x_company_id)
    except CandidateNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": "ProjectNotFound", "message": str(e)})

    results: List[UploadFileResult] = []
    rejected_status = 400
    for upload in files:
        filename = upload.filename or ""
        try:
            text, name = await container.file_service.process_fastapi_file(upload)
            candidate = await container.candidate_store.create_candidate(
                project_id=project.id, name=name, extracted_text=text, file_name=filename,
            )
            await container.analysis_queue.enqueue(candidate.id, candidate, project)
            results.append(UploadFileResult(
                filename=filename, success=True, candidate_id=candidate.id, candidate_name=candidate.name,
            ))
        except (UnsupportedFileTypeError, FileSizeExceededError, FileServiceError) as e:
            logger.warning(f"简历 {filename} 校验失败: {e}")
            rejected_status = 413 if isinstance(e, FileSizeExceededError) else 400
            results.append(UploadFileResult(filename=filename, success=False, error=str(e)))
        except Exception as e:
            logger.error(f"处理简历 {filename} 失败: {e}", exc_info=True)
            rejected_status = 500
            results.append(UploadFileResult(filename=filename, success=False, error="简历处理失败"))

    succeeded = sum(1 for r in results if r.success)
    failed = len(results) - succeeded

    # 只上传一个文件且失败时，直接返回对应的错误码
    if len(files) == 1 and failed == 1:
        raise HTTPException(
            status_code=rejected_status,
            detail={"error": "UploadFailed", "message": results[0].error},
        )

    return UploadResponse(
        success=failed == 0,
        message=f"已加入分析队列 {succeeded} 份简历，失败 {failed} 份",
        total=len(results),
        succeeded=succeeded,
        failed=failed,
        results=results,
        queue=container.analysis_queue.status(project.id),
    )


@router.post("/{candidate_id}/analyze", response_model=ReanalyzeResponse)
async def reanalyze_candidate(
    candidate_id: str,
    x_company_id: Optional[str] = Header(None, alias="X-Company-ID"),
    container: AppContainer = Depends(get_container),
):
    """
    同步重新分析一个候选人（保留上次得分并更新项目排名）
    """
    try:
        candidate = await container.candidate_store.get_candidate(candidate_id, x_company_id)
        project = await container.candidate_store.get_project(candidate.project_id)
        updated = await container.candidate_analysis.reanalyze(candidate, project)

    except CandidateNotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": "CandidateNotFound", "message": str(e)})

    except NoAvailableCredentialError as e:
        logger.error(f"重新分析候选人 {candidate_id} 失败: {e}")
        raise HTTPException(status_code=503, detail={"error": "NoAvailableApiKey", "message": str(e)})

    if updated is None:
        return ReanalyzeResponse(success=False, message="分析失败，请重试")

    return ReanalyzeResponse(
        success=True,
        message="重新分析完成",
        candidate=updated.model_dump(mode="json", by_alias=True),
    )
