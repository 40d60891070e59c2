"""
组合根
集中创建所有有状态的对象（Key 池、队列注册表、推送通道等），再注入到各个服务中。
应用和测试各自创建自己的容器，互不共享状态。
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from hr_ats.core.analysis_invoker import AnalysisInvoker
from hr_ats.core.key_pool import KeyPoolManager
from hr_ats.core.llms import create_llm_from_config
from hr_ats.core.model_resolver import ModelResolver
from hr_ats.services.analysis_queue import AnalysisQueueService
from hr_ats.services.candidate_analysis import CandidateAnalysisService
from hr_ats.services.file_service import FileService
from hr_ats.services.progress_notifier import ProgressNotifier, ProjectConnectionManager
from hr_ats.services.queue_registry import QueueRegistry

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    key_pool: KeyPoolManager
    model_resolver: ModelResolver
    invoker: AnalysisInvoker
    connections: ProjectConnectionManager
    notifier: ProgressNotifier
    registry: QueueRegistry
    candidate_analysis: CandidateAnalysisService
    analysis_queue: AnalysisQueueService
    file_service: FileService
    candidate_store: object = None
    model_config_store: object = None
    database: object = None


def build_container(
    database=None,
    credential_store=None,
    model_config_store=None,
    persistence=None,
    candidate_store=None,
    llm_factory: Callable = create_llm_from_config,
    key_pool: Optional[KeyPoolManager] = None,
    registry: Optional[QueueRegistry] = None,
    **queue_options,
) -> AppContainer:
    """
    创建应用容器

    只传 database 时，各个存储服务都基于该连接池创建；
    测试时可以单独传入假的存储和 llm_factory。
    """
    if database is not None:
        from hr_ats.database.analysis_repository import AnalysisRepository
        from hr_ats.database.api_key_service import ApiKeyService
        from hr_ats.database.candidate_service import CandidateService
        from hr_ats.database.model_config_service import ModelConfigService

        credential_store = credential_store or ApiKeyService(database)
        model_config_store = model_config_store or ModelConfigService(database)
        persistence = persistence or AnalysisRepository(database)
        candidate_store = candidate_store or CandidateService(database)

    key_pool = key_pool or KeyPoolManager(credential_store=credential_store)
    model_resolver = ModelResolver(model_config_store=model_config_store)
    invoker = AnalysisInvoker(
        key_pool=key_pool,
        model_resolver=model_resolver,
        credential_store=credential_store,
        llm_factory=llm_factory,
    )

    connections = ProjectConnectionManager()
    notifier = ProgressNotifier(channel=connections)
    registry = registry or QueueRegistry()

    candidate_analysis = CandidateAnalysisService(invoker, persistence, notifier)
    analysis_queue = AnalysisQueueService(
        candidate_analysis=candidate_analysis,
        key_pool=key_pool,
        registry=registry,
        notifier=notifier,
        **queue_options,
    )

    logger.info("[Container] 应用组件初始化完成")
    return AppContainer(
        key_pool=key_pool,
        model_resolver=model_resolver,
        invoker=invoker,
        connections=connections,
        notifier=notifier,
        registry=registry,
        candidate_analysis=candidate_analysis,
        analysis_queue=analysis_queue,
        file_service=FileService(),
        candidate_store=candidate_store,
        model_config_store=model_config_store,
        database=database,
    )
