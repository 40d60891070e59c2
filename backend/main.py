"""
FastAPI 主入口文件
HR 招聘简历分析后端服务
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hr_ats import __version__
from hr_ats.api import api_keys, candidates, projects, websocket
from hr_ats.core.config import DEBUG, HOST, PORT
from hr_ats.core.container import build_container
from hr_ats.core.exceptions import CandidateNotFoundError, NoAvailableCredentialError

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    """
    logger.info("HR 简历分析服务启动中...")

    from hr_ats.database import db_manager, init_database
    await init_database(db_manager)

    container = build_container(database=db_manager)
    app.state.container = container
    container.registry.start()

    logger.info("后台清理任务已启动")

    yield

    logger.info("HR 简历分析服务关闭中...")
    await cleanup_resources(app)


async def cleanup_resources(app: FastAPI):
    """
    清理所有资源：停止清理任务和工作协程，等待推送完成，关闭数据库连接池
    """
    container = getattr(app.state, "container", None)
    if container is None:
        return

    try:
        await container.registry.stop()
    except Exception as e:
        logger.error(f"停止分析队列时出错: {e}")

    try:
        await container.notifier.flush()
    except Exception as e:
        logger.error(f"等待进度推送完成时出错: {e}")

    if container.database is not None:
        try:
            await container.database.disconnect()
        except Exception as e:
            logger.error(f"关闭数据库连接池时出错: {e}")

    logger.info("资源清理完成")


def create_app(lifespan_handler=lifespan) -> FastAPI:
    """创建 FastAPI 应用实例（测试时可以替换生命周期）"""
    application = FastAPI(
        title="HR 简历分析 API",
        description="基于 FastAPI + LLM 的批量简历评分与排名服务",
        version=__version__,
        lifespan=lifespan_handler,
    )

    # 配置 CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 生产环境中应该限制具体的域名
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        """HTTP 异常处理"""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail if isinstance(exc.detail, dict) else {
                "error": "HTTPException",
                "message": exc.detail
            }
        )

    @application.exception_handler(NoAvailableCredentialError)
    async def no_credential_handler(request, exc):
        """没有可用 Key"""
        logger.error(f"没有可用的 API Key: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "NoAvailableApiKey", "message": str(exc)}
        )

    @application.exception_handler(CandidateNotFoundError)
    async def not_found_handler(request, exc):
        return JSONResponse(
            status_code=404,
            content={"error": "NotFound", "message": str(exc)}
        )

    @application.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        """通用异常处理"""
        logger.error(f"未处理的异常: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "InternalServerError",
                "message": "服务器内部错误,请稍后重试"
            }
        )

    @application.get("/")
    async def root():
        """
        根路径，返回 API 信息
        """
        return {
            "message": "HR 简历分析 API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
        }

    @application.get("/health")
    async def health_check():
        """
        健康检查端点
        """
        container = getattr(application.state, "container", None)
        return {
            "status": "healthy",
            "message": "服务运行正常",
            "activeQueues": len(container.registry) if container else 0,
        }

    # 注册路由
    application.include_router(candidates.router)
    application.include_router(projects.router)
    application.include_router(api_keys.router)
    application.include_router(websocket.router)

    return application


app = create_app()


# 启动信息
if __name__ == "__main__":
    import uvicorn

    logger.info(f"启动服务器: http://{HOST}:{PORT}")
    logger.info(f"API 文档: http://{HOST}:{PORT}/docs")

    try:
        uvicorn.run(
            "main:app",
            host=HOST,
            port=PORT,
            reload=DEBUG,
            log_level="info"
        )
    except KeyboardInterrupt:
        logger.info("接收到键盘中断，正在关闭...")
    finally:
        logger.info("服务器已关闭")
