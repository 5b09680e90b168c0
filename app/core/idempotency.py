"""
Idempotent write wrapper
Deduplicates retried mutations through the idempotent_writes collection
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.core.database import run_in_transaction
from app.core.errors import conflict

logger = logging.getLogger(__name__)


async def run_idempotent(
    db: AsyncIOMotorDatabase,
    key: Optional[str],
    scope: Dict[str, Any],
    operation: Callable[[AsyncIOMotorClientSession], Awaitable[dict]],
) -> dict:
    """
    Execute operation(session) at most once per idempotency key

    The key lookup, the operation and the stored {key -> result} record share
    one transaction: two concurrent requests with the same key cannot both
    miss and both execute, the second one conflicts, retries and replays.

    Without a key the operation still runs in its own transaction.
    """

    async def _execute(session: AsyncIOMotorClientSession) -> dict:
        if key:
            stored = await db.idempotent_writes.find_one({"_id": key}, session=session)
            if stored is not None:
                if stored.get("scope") != scope:
                    raise conflict(
                        "idempotency_key_reused",
                        "Idempotency key was already used for a different request",
                    )
                logger.info("Idempotent replay for key %s (%s)", key, scope.get("kind"))
                return stored["result"]

        result = await operation(session)

        if key:
            await db.idempotent_writes.insert_one(
                {
                    "_id": key,
                    "scope": scope,
                    "result": result,
                    "created_at": datetime.utcnow(),
                },
                session=session,
            )

        return result

    return await run_in_transaction(db, _execute)
