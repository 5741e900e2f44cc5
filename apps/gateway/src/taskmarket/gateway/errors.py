"""错误响应映射

领域异常统一转换为 {"error": {"code", "message", ...details}} 结构，
HTTP 状态码取自异常的 http_status。
"""

import aiosqlite
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse
from taskmarket.core.exceptions import StoreFailureError, TaskMarketError

log = structlog.get_logger()


def error_response(status_code: int, code: str, message: str, **details) -> JSONResponse:
    """构建统一错误响应"""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, **details}},
    )


async def task_market_error_handler(request: Request, exc: TaskMarketError) -> JSONResponse:
    if exc.http_status >= 500:
        # 原始异常只写日志，不返回给客户端
        log.error(
            "request_failed",
            code=exc.code,
            error=repr(exc.__cause__ or exc),
        )
    else:
        log.info("request_rejected", code=exc.code, message=exc.message)
    return error_response(exc.http_status, exc.code, exc.message, **exc.details())


async def store_error_handler(request: Request, exc: aiosqlite.Error) -> JSONResponse:
    """写事务之外（读操作）抛出的 SQLite 错误按 STORE_FAILURE 返回"""
    failure = StoreFailureError(f"{request.method} {request.url.path}")
    log.error(
        "request_failed",
        code=failure.code,
        operation=failure.operation,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return error_response(failure.http_status, failure.code, failure.message)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in exc.errors()
    ]
    return error_response(400, "VALIDATION_ERROR", "Invalid request", fields=fields)


def register_error_handlers(app: FastAPI) -> None:
    """注册异常处理器"""
    app.add_exception_handler(TaskMarketError, task_market_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(aiosqlite.Error, store_error_handler)
