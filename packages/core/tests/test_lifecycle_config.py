"""配置加载与 CLI 单元测试"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
from taskmarket.core.__main__ import main
from taskmarket.core.config import LifecycleConfig, get_db_path, load_lifecycle_config
from taskmarket.core.models import Business


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "TASKMARKET_DATA_DIR",
        "TASKMARKET_DB_PATH",
        "TASKMARKET_REQUIRE_AUTH",
        "TASKMARKET_MAX_CONFLICT_RETRIES",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestConfig:
    def test_defaults(self, clean_env):
        config = load_lifecycle_config()
        assert config == LifecycleConfig()
        assert config.require_authentication is False
        assert config.max_conflict_retries == 3
        assert get_db_path() == str(Path("data") / "sqlite" / "taskmarket.db")

    def test_db_path_from_data_dir(self, clean_env, tmp_path):
        clean_env.setenv("TASKMARKET_DATA_DIR", str(tmp_path))
        assert get_db_path() == str(tmp_path / "sqlite" / "taskmarket.db")

    def test_explicit_db_path_wins(self, clean_env, tmp_path):
        clean_env.setenv("TASKMARKET_DATA_DIR", str(tmp_path))
        clean_env.setenv("TASKMARKET_DB_PATH", "/srv/market.db")
        assert get_db_path() == "/srv/market.db"

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("no", False)])
    def test_require_auth(self, clean_env, value, expected):
        clean_env.setenv("TASKMARKET_REQUIRE_AUTH", value)
        assert load_lifecycle_config().require_authentication is expected

    def test_retries(self, clean_env):
        clean_env.setenv("TASKMARKET_MAX_CONFLICT_RETRIES", "5")
        assert load_lifecycle_config().max_conflict_retries == 5

    @pytest.mark.parametrize("value", ["zero", "0", "-2"])
    def test_invalid_retries_ignored(self, clean_env, value):
        clean_env.setenv("TASKMARKET_MAX_CONFLICT_RETRIES", value)
        assert load_lifecycle_config().max_conflict_retries == 3


class TestCli:
    def test_usage(self, capsys):
        assert main([]) == 1
        assert "init-db" in capsys.readouterr().out

    def test_unknown_command(self):
        assert main(["rebuild"]) == 1

    def test_unknown_option(self):
        assert main(["reconcile-business-tasks", "--force"]) == 1

    def test_init_db_then_reconcile(self, clean_env, tmp_path, capsys):
        db_path = tmp_path / "cli" / "market.db"
        clean_env.setenv("TASKMARKET_DB_PATH", str(db_path))

        assert main(["init-db"]) == 0
        assert db_path.exists()
        assert main(["reconcile-business-tasks", "--dry-run"]) == 0
        assert "检查 0 个商家" in capsys.readouterr().out

    async def test_reconcile_reports_drift(self, clean_env, tmp_path, store_group, tmp_db_path):
        await store_group.business_store.create_business(
            Business(business_id="biz-1", created_at=datetime.now(UTC), tasks=["ghost"])
        )
        await store_group.conn.commit()
        clean_env.setenv("TASKMARKET_DB_PATH", str(tmp_db_path))

        # CLI 内部调用 asyncio.run，需在独立线程中执行
        assert await asyncio.to_thread(main, ["reconcile-business-tasks"]) == 2

        async with aiosqlite.connect(str(tmp_db_path)) as conn:
            cursor = await conn.execute(
                "SELECT tasks FROM businesses WHERE business_id = ?", ("biz-1",)
            )
            row = await cursor.fetchone()
        assert row[0] == "[]"
