"""
Event Store service for append-only audit logging.

Session transitions and newly achieved masteries are logged here in the same
transaction as the change itself, so a rolled-back request leaves no event.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.SESSION_STARTED,
            entity_type="quiz_session",
            entity_id=quiz_session.id,
            user_id=user_id,
            payload={"from_status": "created", "to_status": "active"},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EventLog:
        """
        Append an event to the log.

        Args:
            event_type: The type of event
            entity_type: The type of entity (quiz_session, concept_progress)
            entity_id: The ID of the entity
            user_id: The ID of the user who triggered the event
            payload: Additional event data
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)

        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self.session.add(event)
        # Caller flushes/commits together with the state change
        return event

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[EventLog]:
        """
        Get the event history for a specific entity, oldest first.
        """
        query = select(EventLog).where(
            and_(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == entity_id,
            )
        )

        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))

        query = query.order_by(EventLog.created_at).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, list):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else str(v) if isinstance(v, uuid.UUID)
                    else v.isoformat() if isinstance(v, datetime)
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result


_SESSION_EVENTS = {
    "active": EventType.SESSION_STARTED,
    "paused": EventType.SESSION_PAUSED,
    "completed": EventType.SESSION_COMPLETED,
    "abandoned": EventType.SESSION_ABANDONED,
}


async def log_session_transition(
    session: AsyncSession,
    quiz_session_id: uuid.UUID,
    user_id: uuid.UUID,
    from_status: Optional[str],
    to_status: str,
    payload: Optional[Dict[str, Any]] = None,
) -> EventLog:
    """Log a session status change (paused -> active is logged as a resume)."""
    if from_status is None:
        event_type = EventType.SESSION_CREATED
    elif from_status == "paused" and to_status == "active":
        event_type = EventType.SESSION_RESUMED
    else:
        event_type = _SESSION_EVENTS[to_status]

    return await EventStore(session).log(
        event_type=event_type,
        entity_type="quiz_session",
        entity_id=quiz_session_id,
        user_id=user_id,
        payload={"from_status": from_status, "to_status": to_status, **(payload or {})},
    )


async def log_mastery_achieved(
    session: AsyncSession,
    progress_id: uuid.UUID,
    user_id: uuid.UUID,
    concept_id: str,
    difficulty: str,
    new_difficulty: str,
) -> EventLog:
    """Log the one-time mastery of a concept at a difficulty."""
    return await EventStore(session).log(
        event_type=EventType.MASTERY_ACHIEVED,
        entity_type="concept_progress",
        entity_id=progress_id,
        user_id=user_id,
        payload={
            "concept_id": concept_id,
            "difficulty": difficulty,
            "new_difficulty": new_difficulty,
        },
    )
