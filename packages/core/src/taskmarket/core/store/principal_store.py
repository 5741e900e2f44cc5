"""PrincipalStore SQLite 实现 -- principal 到商家/员工身份的映射"""

import aiosqlite

from ..models.business import PrincipalLink


class SqlitePrincipalStore:
    """PrincipalStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def link_principal(self, link: PrincipalLink) -> None:
        """写入或合并 principal 关联（不自动提交）

        已存在的关联只覆盖本次提供的非空字段。
        """
        await self._conn.execute(
            """
            INSERT INTO principals (uid, business_id, employee_id)
            VALUES (?, ?, ?)
            ON CONFLICT(uid) DO UPDATE SET
                business_id = COALESCE(excluded.business_id, principals.business_id),
                employee_id = COALESCE(excluded.employee_id, principals.employee_id)
            """,
            (link.uid, link.business_id, link.employee_id),
        )

    async def get_principal(self, uid: str) -> PrincipalLink | None:
        """根据 uid 查询 principal 关联"""
        cursor = await self._conn.execute(
            "SELECT uid, business_id, employee_id FROM principals WHERE uid = ?",
            (uid,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return PrincipalLink(uid=row[0], business_id=row[1], employee_id=row[2])
