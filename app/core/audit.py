import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncIOMotorDatabase,
    actor: AuthUser,
    action: str,
    target_type: str,
    target_id: str,
    metadata: Optional[dict] = None,
):
    """
    Log destructive or important authoring actions for auditability

    Args:
        actor: Authenticated caller
        action: Action performed (e.g., 'create_assignment', 'delete_assignment')
        target_type: Resource type (e.g., 'assignment', 'questionnaire', 'course')
        target_id: ID of the resource
        metadata: Additional context (optional)

    A failing audit write never fails or rolls back the audited operation.
    """
    entry = {
        "actor_id": actor.uid,
        "actor_email": actor.email,
        "role": actor.role,
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "metadata": metadata or {},
        "timestamp": datetime.utcnow(),
    }

    try:
        await db.audit_logs.insert_one(entry)
    except Exception as e:
        logger.warning("Audit log write failed for %s %s/%s: %s", action, target_type, target_id, e)


async def get_audit_trail(
    db: AsyncIOMotorDatabase,
    target_type: str = None,
    target_id: str = None,
    limit: int = 100,
    actor_id: str = None,
) -> List[dict]:
    """Retrieve audit logs with optional filters, newest first"""
    query = {}

    if actor_id:
        query["actor_id"] = actor_id

    if target_type:
        query["target_type"] = target_type

    if target_id:
        query["target_id"] = target_id

    cursor = db.audit_logs.find(query).sort("timestamp", -1)
    logs = await cursor.to_list(length=limit)

    for log in logs:
        log.pop("_id", None)

    return logs
