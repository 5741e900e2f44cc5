"""配置模块 -- 可通过环境变量覆盖

包含数据库路径与生命周期操作配置（匿名调用策略、并发冲突重试次数）。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TASKMARKET_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TASKMARKET_DB_PATH",
        str(_get_base_dir() / "sqlite" / "taskmarket.db"),
    )


class LifecycleConfig(BaseModel):
    """生命周期操作配置

    环境变量:
        TASKMARKET_REQUIRE_AUTH: 所有权检查是否要求可解析的 principal（默认 false）
        TASKMARKET_MAX_CONFLICT_RETRIES: 乐观并发冲突最大尝试次数（默认 3）
    """

    require_authentication: bool = Field(
        default=False,
        description="false 时未提供 principal 的调用方不受所有权检查限制",
    )
    max_conflict_retries: int = Field(
        default=3,
        ge=1,
        description="版本冲突时重新读取并校验的最大次数",
    )


def load_lifecycle_config() -> LifecycleConfig:
    """从环境变量加载生命周期配置

    Returns:
        LifecycleConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TASKMARKET_REQUIRE_AUTH"):
        kwargs["require_authentication"] = val.strip().lower() in _TRUE_VALUES

    if val := os.environ.get("TASKMARKET_MAX_CONFLICT_RETRIES"):
        try:
            retries = int(val)
            if retries < 1:
                raise ValueError(val)
            kwargs["max_conflict_retries"] = retries
        except ValueError:
            log.warning(
                "invalid_retry_config",
                env_var="TASKMARKET_MAX_CONFLICT_RETRIES",
                value=val,
                fallback=3,
            )

    return LifecycleConfig(**kwargs)
