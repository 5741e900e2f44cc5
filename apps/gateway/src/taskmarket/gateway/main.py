"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、生命周期配置加载、路由与错误处理注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from taskmarket.core.config import get_db_path, load_lifecycle_config
from taskmarket.core.store import create_store_group

from .errors import register_error_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, tasks

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 Store，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    lifecycle_config = load_lifecycle_config()
    app.state.lifecycle_config = lifecycle_config
    log.info(
        "gateway_started",
        db_path=db_path,
        require_authentication=lifecycle_config.require_authentication,
        max_conflict_retries=lifecycle_config.max_conflict_retries,
    )

    yield

    if getattr(app.state, "store_group", None) is not None:
        await app.state.store_group.close()
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="TaskMarket Gateway",
        version="0.1.0",
        description="TaskMarket 任务生命周期 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 位于最外层）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    register_error_handlers(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
