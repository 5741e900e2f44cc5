"""CLI 入口模块 -- python -m taskmarket.core <command>

支持的命令：
  init-db                              初始化数据库表结构
  reconcile-business-tasks [--dry-run] 修复商家任务列表与任务归属的偏差
"""

import asyncio
import sys

from .config import get_db_path

_USAGE = [
    "用法: python -m taskmarket.core <command>",
    "命令:",
    "  init-db                              初始化数据库表结构",
    "  reconcile-business-tasks [--dry-run] 修复商家任务列表",
]


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口，返回退出码"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print("\n".join(_USAGE))
        return 1

    command, options = args[0], args[1:]

    if command == "init-db":
        asyncio.run(init_database())
        return 0
    if command == "reconcile-business-tasks":
        unknown = [o for o in options if o != "--dry-run"]
        if unknown:
            print(f"未知参数: {' '.join(unknown)}")
            return 1
        consistent = asyncio.run(reconcile_business_tasks(dry_run="--dry-run" in options))
        return 0 if consistent else 2

    print(f"未知命令: {command}")
    print("可用命令: init-db, reconcile-business-tasks")
    return 1


async def init_database() -> None:
    """创建数据库文件并初始化表结构"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("初始化完成")


async def reconcile_business_tasks(dry_run: bool = False) -> bool:
    """执行商家任务列表修复

    Returns:
        修复前是否已经一致
    """
    from .consistency import BusinessTaskConsistency
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始检查商家任务列表..." + ("（dry-run，不写入）" if dry_run else ""))

    store_group = await create_store_group(db_path)
    try:
        report = await BusinessTaskConsistency(store_group).reconcile(dry_run=dry_run)
    finally:
        await store_group.close()

    for issue in report.issues:
        print(f"  [{issue.kind}] business={issue.business_id} task={issue.task_id}")
    print(
        f"检查 {report.businesses_checked} 个商家，"
        f"发现 {len(report.issues)} 个问题，"
        f"{'需修复' if dry_run else '已修复'} {len(report.businesses_repaired)} 个商家"
    )
    return report.is_consistent


if __name__ == "__main__":
    sys.exit(main())
