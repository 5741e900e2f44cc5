"""structlog 配置模块

TASKMARKET_LOG_FORMAT=json 时输出结构化 JSON，否则使用控制台渲染。
Logfire 由 LOGFIRE_SEND_TO_LOGFIRE 控制，默认关闭。
"""

import logging
import os

import structlog

# 噪声较大的第三方 logger，最低输出 WARNING
_NOISY_LOGGERS = ("aiosqlite", "uvicorn.access")


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog（基于标准库 logging 输出）

    Args:
        log_format: "json" 或 "dev"，默认读取 TASKMARKET_LOG_FORMAT
        log_level: 日志级别名，默认读取 TASKMARKET_LOG_LEVEL
    """
    log_format = log_format or os.environ.get("TASKMARKET_LOG_FORMAT", "dev")
    level = _resolve_level(log_level or os.environ.get("TASKMARKET_LOG_LEVEL", "INFO"))

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logfire(app=None) -> bool:
    """按需启用 Logfire，返回是否启用成功

    logfire 为可选依赖（extra: observability），未安装或初始化失败时只记录告警。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").strip().lower() != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="taskmarket-gateway")
        if app is not None:
            logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
        return False
    return True
