"""Database — aiosqlite 연결, 스키마 버전, payload 입출력.

단일 aiosqlite.Connection 위에서 SqliteRepository가 쓰는 두 가지 연산만 제공합니다:
    - fetch_payloads(): payload(JSON) 컬럼 조회
    - write(): 단일 문장 실행 + commit (쓰기 lock으로 직렬화)

연결 시 WAL 모드를 켜고 스키마를 멱등 생성한 뒤 PRAGMA user_version으로
스키마 버전을 기록/검증합니다. 더 새로운 버전의 DB 파일은 열지 않습니다.

Rules Applied:
    - #23 Exception Handling: 미연결 사용/버전 불일치는 StorageError
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Self

import aiosqlite
from loguru import logger

from rebalancer.core.exceptions import StorageError
from rebalancer.storage.schema import SCHEMA_SQL, SCHEMA_VERSION

if TYPE_CHECKING:
    from types import TracebackType

MEMORY_PATH = ":memory:"


class Database:
    """Index/감사 레코드 저장용 SQLite 연결.

    Args:
        db_path: SQLite 파일 경로. ":memory:"면 인메모리 DB (테스트용)

    Example:
        >>> async with Database("data/rebalancer.db") as db:
        ...     repo = SqliteRepository(db)
    """

    def __init__(self, db_path: str = "data/rebalancer.db") -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> str:
        """DB 파일 경로."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """연결 여부."""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 + WAL + 스키마 생성/버전 검증.

        Raises:
            StorageError: DB 파일의 스키마 버전이 코드보다 새로운 경우
        """
        if self._db_path != MEMORY_PATH:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(self._db_path)
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            version = await self._migrate(conn)
        except BaseException:
            await conn.close()
            raise

        self._conn = conn
        logger.info("Database connected: {} (schema v{})", self._db_path, version)

    async def close(self) -> None:
        """연결 종료 (중복 호출 허용)."""
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("Database closed: {}", self._db_path)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def schema_version(self) -> int:
        """현재 DB의 user_version."""
        return await self._user_version(self._connection())

    async def fetch_payloads(self, sql: str, params: tuple[object, ...] = ()) -> list[str]:
        """SELECT 결과의 payload 컬럼 목록."""
        async with self._connection().execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [row["payload"] for row in rows]

    async def write(self, sql: str, params: tuple[object, ...]) -> None:
        """단일 쓰기 + commit.

        동시 태스크의 commit이 서로의 미완료 문장을 확정하지 않도록 직렬화합니다.
        """
        conn = self._connection()
        async with self._write_lock:
            try:
                await conn.execute(sql, params)
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected"
            raise StorageError(msg, context={"path": self._db_path})
        return self._conn

    async def _migrate(self, conn: aiosqlite.Connection) -> int:
        """스키마 멱등 생성 후 user_version 기록. 최종 버전 반환."""
        current = await self._user_version(conn)
        if current > SCHEMA_VERSION:
            msg = f"Database schema v{current} is newer than supported v{SCHEMA_VERSION}"
            raise StorageError(msg, context={"path": self._db_path})

        await conn.executescript(SCHEMA_SQL)
        if current < SCHEMA_VERSION:
            # PRAGMA는 파라미터 바인딩 불가 (정수 상수만 사용)
            await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION:d}")
            logger.info("Database schema upgraded v{} -> v{}", current, SCHEMA_VERSION)
        await conn.commit()
        return SCHEMA_VERSION

    @staticmethod
    async def _user_version(conn: aiosqlite.Connection) -> int:
        async with conn.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0
