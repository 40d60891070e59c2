"""
候选人分析服务
单个候选人的完整处理流程：推送开始事件 -> 调用 LLM -> 保存分析 -> 更新候选人快照 -> 推送完成事件。
队列工作协程和“重新分析”接口共用这里的逻辑。
"""

import logging
from typing import Any, Dict, Optional

from hr_ats.core.analysis_invoker import AnalysisInvoker
from hr_ats.core.config import UNKNOWN_CANDIDATE_NAME
from hr_ats.core.exceptions import NoAvailableCredentialError
from hr_ats.models.analysis import AnalysisResult
from hr_ats.models.queue import CandidateSnapshot, ProjectSnapshot
from hr_ats.services.progress_notifier import ProgressNotifier

logger = logging.getLogger(__name__)

FAILED_SUMMARY = "分析失败，请重试"


def build_candidate_update(candidate: CandidateSnapshot, result: AnalysisResult) -> Dict[str, Any]:
    """根据分析结果生成候选人快照需要更新的字段"""
    update: Dict[str, Any] = {
        "score": result.score,
        "status": "analyzed",
        "summary": result.summary,
    }

    extracted = result.extracted_data
    extracted_dict = extracted.model_dump(exclude_none=True, exclude_defaults=True)
    if extracted_dict:
        update["extracted_data"] = extracted_dict
        # 只有名字仍是占位符时才用提取到的姓名覆盖
        if extracted.name and candidate.name == UNKNOWN_CANDIDATE_NAME:
            update["name"] = extracted.name
        if extracted.email:
            update["email"] = extracted.email
        if extracted.phone:
            update["phone"] = extracted.phone

    return update


class CandidateAnalysisService:
    """候选人分析服务"""

    def __init__(self, invoker: AnalysisInvoker, persistence, notifier: ProgressNotifier):
        """
        Args:
            invoker: LLM 调用器
            persistence: 分析结果存储（save_analysis / update_candidate_snapshot / update_rankings）
            notifier: 进度通知器
        """
        self.invoker = invoker
        self.persistence = persistence
        self.notifier = notifier

    async def analyze_and_persist(
        self,
        candidate: CandidateSnapshot,
        project: ProjectSnapshot,
        keep_previous_score: bool = False,
    ) -> CandidateSnapshot:
        """
        分析并保存一个候选人，失败时抛出异常由调用方处理

        Returns:
            CandidateSnapshot: 更新后的候选人快照
        """
        self.notifier.analysis_started(project.id, candidate.id)

        result = await self.invoker.analyze(
            candidate.extracted_text,
            project.job_description,
            project.custom_prompt,
            scope=project.company_id,
        )

        await self.persistence.save_analysis(project.id, candidate.id, result)

        fields = build_candidate_update(candidate, result)
        if keep_previous_score:
            fields["previous_score"] = candidate.score
        await self.persistence.update_candidate_snapshot(candidate.id, fields)

        updated = candidate.model_copy(update=fields)
        self.notifier.analysis_completed(project.id, updated)

        logger.info(f"[CandidateAnalysis] 候选人 {candidate.id} 分析完成，得分 {result.score}")
        return updated

    async def mark_failed(self, candidate: CandidateSnapshot, project: ProjectSnapshot, error: Exception) -> None:
        """分析失败：候选人标记为 error 并推送错误事件"""
        self.notifier.analysis_error(project.id, candidate.id, str(error))
        try:
            await self.persistence.update_candidate_snapshot(
                candidate.id, {"status": "error", "summary": FAILED_SUMMARY}
            )
        except Exception as e:
            logger.error(f"[CandidateAnalysis] 更新候选人 {candidate.id} 失败状态出错: {e}")

    async def reanalyze(self, candidate: CandidateSnapshot, project: ProjectSnapshot) -> Optional[CandidateSnapshot]:
        """
        重新分析一个候选人（同步接口调用）

        保留上一次得分并重新计算项目排名。只有“没有可用 Key”会继续向上抛出，
        其他失败只体现在候选人状态和错误事件上。
        """
        logger.info(f"[CandidateAnalysis] 开始重新分析候选人 {candidate.id}")
        try:
            updated = await self.analyze_and_persist(candidate, project, keep_previous_score=True)
        except NoAvailableCredentialError as e:
            await self.mark_failed(candidate, project, e)
            raise
        except Exception as e:
            logger.error(f"[CandidateAnalysis] 候选人 {candidate.id} 重新分析失败: {e}", exc_info=True)
            await self.mark_failed(candidate, project, e)
            return None

        try:
            await self.persistence.update_rankings(project.id)
        except Exception as e:
            logger.warning(f"[CandidateAnalysis] 更新项目 {project.id} 排名失败: {e}")
        return updated
