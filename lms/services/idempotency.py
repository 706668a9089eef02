"""At-most-once guard for externally keyed operations.

Usage inside one transaction with the side effects it guards::

    ledger = IdempotencyLedger(session)
    if await ledger.begin(event_id, "webhook:stripe") == "exists":
        ...  # duplicate: skip side effects, answer like the first run
    ...      # side effects
    await ledger.finish(event_id, "webhook:stripe", "succeeded", digest)

``begin`` is a single INSERT ... ON CONFLICT DO NOTHING, so the unique
(scope, key) constraint decides the winner under concurrent delivery:
the loser either sees the committed row or blocks on the winner's
uncommitted insert until it commits or rolls back.  If the transaction
rolls back, the key disappears with it and a retry starts fresh.
"""

from __future__ import annotations

import logging
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.repos.idempotency_repo import IdempotencyRepo

logger = logging.getLogger(__name__)

BeginResult = Literal["new", "exists"]
FinishStatus = Literal["succeeded", "failed"]


class IdempotencyLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = IdempotencyRepo(session)

    async def begin(self, key: str, scope: str) -> BeginResult:
        if not key or not scope:
            raise ValueError("idempotency key and scope must be non-empty")
        inserted = await self._repo.insert_processing(scope, key, now_epoch())
        if not inserted:
            logger.info("Duplicate operation skipped scope=%s key=%s", scope, key)
            return "exists"
        return "new"

    async def finish(
        self,
        key: str,
        scope: str,
        status: FinishStatus,
        response_hash: str | None = None,
    ) -> None:
        await self._repo.set_status(scope, key, status, response_hash, now_epoch())

    async def status_of(self, key: str, scope: str) -> str | None:
        found = await self._repo.get_status(scope, key)
        return found[0] if found is not None else None
