"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import customers as customer_routes
from api.routes import discovery as discovery_routes
from api.middleware import RequestIDMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from domain.discovery.exceptions import DiscoveryError
from infrastructure.discovery import create_discovery_session


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    session = None
    if settings.discovery.enabled:
        session = create_discovery_session(settings.discovery, settings.grpc_client, debug=settings.DEBUG)
        app.state.discovery_session = session
        try:
            # 只构造传输对象并启动后台发现，不等待注册中心
            await session.acquire()
            logger.info(
                "discovery_started",
                service=settings.discovery.service_name,
                registry=settings.discovery.registry_address,
            )
        except DiscoveryError as exc:
            logger.error("discovery_init_failed", error=str(exc))
    else:
        logger.info("discovery_disabled", message="Service discovery disabled (DISCOVERY__ENABLED=false)")

    yield

    if session is not None:
        await session.close()
        await session.registry.close()
    logger.info("application_shutdown", message="Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="客户管理 API 与注册中心发现的 gRPC 客户端",
    )

    # 添加中间件（注意顺序：从下往上执行）
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # API Gateway 资源为 /customers，不加版本前缀
    app.include_router(customer_routes.router)
    app.include_router(discovery_routes.router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        session = getattr(app.state, "discovery_session", None)
        return success_response(
            data={
                "status": "healthy",
                "discovery": None if session is None else {
                    "ready": session.is_ready,
                    "discovered": session.is_discovered,
                },
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
