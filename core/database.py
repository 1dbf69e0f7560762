from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import pymongo
from pymongo import AsyncMongoClient
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from core.settings import get_settings

if TYPE_CHECKING:
    from pymongo.asynchronous.client_session import AsyncClientSession
    from pymongo.asynchronous.database import AsyncDatabase

T = TypeVar("T")

_settings = get_settings()

client: AsyncMongoClient = AsyncMongoClient(_settings.mongo_url, serverSelectionTimeoutMS=2000, tz_aware=True)
db = client[_settings.db_name]


@dataclass(frozen=True)
class TransactionOptions:
    max_wait_ms: int = 5_000
    timeout_ms: int = 30_000

    @classmethod
    def from_settings(cls) -> "TransactionOptions":
        settings = get_settings()
        return cls(
            max_wait_ms=settings.transaction_max_wait_ms,
            timeout_ms=settings.transaction_timeout_ms,
        )


@dataclass(frozen=True)
class UploadTransaction:
    """Session-bound handle shared by every write that must commit together.

    Repository helpers that accept one of these may only touch the database
    through ``tx.db`` with ``session=tx.session``.
    """

    session: "AsyncClientSession"
    db: "AsyncDatabase[dict[str, Any]]"


async def run_in_transaction(
    callback: Callable[[UploadTransaction], Awaitable[T]],
    *,
    options: TransactionOptions | None = None,
) -> T:
    options = options or TransactionOptions.from_settings()

    async def _run(session: "AsyncClientSession") -> T:
        return await callback(UploadTransaction(session=session, db=db))

    # The whole transaction, including driver-level retries, shares one deadline.
    with pymongo.timeout(options.timeout_ms / 1000):
        async with client.start_session() as session:
            return await session.with_transaction(
                _run,
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
                max_commit_time_ms=options.max_wait_ms,
            )


async def ping() -> None:
    await client.admin.command("ping")
