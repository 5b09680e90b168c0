import logging
import secrets
from typing import Any, Awaitable, Callable, Optional, TypeVar

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo.errors import PyMongoError

from app.core.config import MONGO_URL, MONGO_DB_NAME, TRANSACTION_MAX_ATTEMPTS
from app.core.errors import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_client: Optional[AsyncIOMotorClient] = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(MONGO_URL)
    return _client


def get_database() -> AsyncIOMotorDatabase:
    return get_client()[MONGO_DB_NAME]


async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return get_database()


# ==================== HELPERS ====================

def generate_id(prefix: str) -> str:
    """Generate unique ID with prefix"""
    return f"{prefix}_{secrets.token_hex(8).upper()}"


def enrollment_key(uid: str, course_id: str) -> str:
    return f"{uid}_{course_id}"


def progress_key(uid: str, course_id: str, module_id: str) -> str:
    return f"{uid}_{course_id}_{module_id}"


def response_key(uid: str, assignment_id: str) -> str:
    return f"{uid}_{assignment_id}"


def clean(doc: Optional[dict]) -> Optional[dict]:
    """Drop the Mongo _id before returning a document to a caller"""
    if doc is None:
        return None
    doc.pop("_id", None)
    return doc


# ==================== TRANSACTIONS ====================

async def _commit_with_retry(session: AsyncIOMotorClientSession, max_attempts: int):
    """Commit, re-sending the commit while its outcome is unknown"""
    attempt = 0
    while True:
        attempt += 1
        try:
            await session.commit_transaction()
            return
        except PyMongoError as e:
            if e.has_error_label("UnknownTransactionCommitResult") and attempt < max_attempts:
                logger.warning("Commit result unknown, retrying commit (attempt %d): %s", attempt, e)
                continue
            raise


async def run_in_transaction(
    db: AsyncIOMotorDatabase,
    operation: Callable[[AsyncIOMotorClientSession], Awaitable[T]],
    max_attempts: int = TRANSACTION_MAX_ATTEMPTS,
) -> T:
    """
    Run operation(session) inside a single multi-document transaction

    The transaction commits when operation returns and aborts on any exception,
    so callers never observe half of a multi-document update. Write conflicts
    between concurrent transactions surface as TransientTransactionError and
    the whole operation is re-run, which is what lets the loser of a race see
    the winner's committed state. A commit whose outcome is unknown is
    re-sent without re-running the operation.
    """
    async with await db.client.start_session() as session:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with session.start_transaction():
                    result = await operation(session)
                    await _commit_with_retry(session, max_attempts)
                return result
            except ServiceError:
                raise
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError") and attempt < max_attempts:
                    logger.warning("Transient transaction error, retrying (attempt %d): %s", attempt, e)
                    continue
                logger.error("Transaction failed after %d attempt(s): %s", attempt, e)
                raise ServiceError(
                    500,
                    "internal_error",
                    "Storage unavailable, transaction rolled back",
                )


# ==================== INDEXES ====================

async def create_indexes(db: AsyncIOMotorDatabase):
    """
    Create database indexes for optimal query performance
    Called during application startup
    """

    # Courses and modules
    await db.courses.create_index("course_id", unique=True)
    await db.courses.create_index("owner_id")
    await db.course_modules.create_index("module_id", unique=True)
    await db.course_modules.create_index([("course_id", 1), ("index", 1)], unique=True)

    # Questionnaire templates and their frozen versions
    await db.questionnaires.create_index("questionnaire_id", unique=True)
    await db.questionnaires.create_index("owner_id")
    await db.questionnaire_versions.create_index(
        [("questionnaire_id", 1), ("version", 1)], unique=True
    )

    # Assignments
    await db.questionnaire_assignments.create_index("assignment_id", unique=True)
    await db.questionnaire_assignments.create_index("owner_id")
    await db.questionnaire_assignments.create_index(
        [("scope.course_id", 1), ("active", 1), ("timing", 1)]
    )
    await db.questionnaire_assignments.create_index(
        [("scope.module_id", 1), ("active", 1), ("timing", 1)]
    )

    # Responses (natural key is the _id)
    await db.questionnaire_responses.create_index("assignment_id")
    await db.questionnaire_responses.create_index([("uid", 1), ("assignment_id", 1)])

    # Learner aggregates
    await db.enrollments.create_index("uid")
    await db.enrollments.create_index("course_id")
    await db.progress.create_index([("uid", 1), ("course_id", 1)])

    # Idempotency records and audit trail
    await db.idempotent_writes.create_index("created_at")
    await db.audit_logs.create_index([("target_type", 1), ("target_id", 1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])

    logger.info("Database indexes created")


async def ping(db: AsyncIOMotorDatabase) -> Any:
    return await db.command("ping")
