"""
Activity recorder.

Called by the outer layer after an operation has succeeded. Writing the
activity row must never turn a successful business operation into a
failed one, so every error here is logged and swallowed.
"""

import logging

from testhub.models.audit import ACTIVITY_ACTIONS, ACTIVITY_ENTITY_TYPES

logger = logging.getLogger(__name__)


async def log_activity(repository, user_id, action, entity_type, entity_id, details=None):
    """Append one ActivityLog row. Returns the record, or ``None`` on any failure."""
    if action not in ACTIVITY_ACTIONS or entity_type not in ACTIVITY_ENTITY_TYPES:
        logger.warning(
            "Unregistered activity kind",
            extra={"action": action, "entity_type": entity_type},
        )
    try:
        record = await repository.log_activity(user_id, action, entity_type, entity_id, details)
    except Exception:
        # Never block business flow on audit writes.
        logger.exception(
            "Activity log write failed",
            extra={"user_id": user_id, "action": action, "entity_type": entity_type, "entity_id": entity_id},
        )
        return None
    if not record:
        logger.error(
            "Activity log rejected: %s",
            record.message,
            extra={"user_id": user_id, "action": action, "entity_type": entity_type},
        )
        return None
    return record
