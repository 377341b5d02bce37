"""데이터 영속화 패키지: Repository Port, 인메모리 및 SQLite(aiosqlite) 구현."""

from rebalancer.storage.database import Database
from rebalancer.storage.repository import InMemoryRepository, Repository
from rebalancer.storage.sqlite_repository import SqliteRepository

__all__ = ["Database", "InMemoryRepository", "Repository", "SqliteRepository"]
