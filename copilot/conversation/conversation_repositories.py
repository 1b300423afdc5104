from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select

from copilot.common.exceptions import NotFoundException, ValidationException
from copilot.common.repositories import BaseRepository
from copilot.common.utils import utcnow
from copilot.conversation import ChatMode, Conversation, PageContext, ResourceType
from copilot.conversation.conversation_entities import ConversationEntity
from copilot.conversation.messages.message_entities import MessageEntity

IMMUTABLE_FIELDS = frozenset({"id", "user_id", "mode", "page_context", "created_at"})


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConversationRepository(BaseRepository):
    """
    Repository for managing conversation data.
    Every lookup that serves a caller is keyed by (conversation id, user id) so ownership is enforced here.
    """

    @staticmethod
    def _to_conversation(entity: ConversationEntity) -> Conversation:
        return Conversation(
            id=entity.id,
            user_id=entity.user_id,
            title=entity.title,
            mode=ChatMode(entity.mode),
            page_context=PageContext.model_validate(entity.page_context) if entity.page_context else None,
            is_closed=entity.is_closed,
            summary_count=entity.summary_count,
            summary=entity.summary,
            previous_summary=entity.previous_summary,
            last_summarized_message_id=entity.last_summarized_message_id,
            total_tokens_used=entity.total_tokens_used,
            created_at=as_utc(entity.created_at),
            last_activity_at=as_utc(entity.last_activity_at),
            expires_at=as_utc(entity.expires_at),
        )

    async def find_by_id(self, conversation_id: str) -> Conversation | None:
        entity = self.session.get(ConversationEntity, conversation_id)
        return self._to_conversation(entity) if entity else None

    async def find_by_id_and_user(self, conversation_id: str, user_id: str) -> Conversation | None:
        entity = self.session.scalars(select(ConversationEntity).filter_by(id=conversation_id, user_id=user_id)).first()
        return self._to_conversation(entity) if entity else None

    async def find_by_user(self, user_id: str, mode: ChatMode | None = None, resource_type: ResourceType | None = None) -> list[Conversation]:
        """Retrieves the user's conversations, most recently active first."""
        stmt = select(ConversationEntity).where(ConversationEntity.user_id == user_id)
        if mode is not None:
            stmt = stmt.where(ConversationEntity.mode == mode.value)
        stmt = stmt.order_by(ConversationEntity.last_activity_at.desc())
        conversations = [self._to_conversation(e) for e in self.session.scalars(stmt).all()]
        if resource_type is not None:
            conversations = [c for c in conversations if c.page_context is not None and c.page_context.type is resource_type]
        return conversations

    async def create(self, conversation: Conversation) -> Conversation:
        entity = ConversationEntity(
            id=conversation.id,
            user_id=conversation.user_id,
            title=conversation.title,
            mode=conversation.mode.value,
            page_context=conversation.page_context.model_dump(mode="json") if conversation.page_context else None,
            is_closed=conversation.is_closed,
            summary_count=conversation.summary_count,
            summary=conversation.summary,
            previous_summary=conversation.previous_summary,
            last_summarized_message_id=conversation.last_summarized_message_id,
            total_tokens_used=conversation.total_tokens_used,
            created_at=conversation.created_at,
            last_activity_at=conversation.last_activity_at,
            expires_at=conversation.expires_at,
        )
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return self._to_conversation(entity)

    async def save(self, conversation_id: str, **changes: Any) -> Conversation:
        """
        Writes the given fields onto the stored record in a single commit.

        Mode and page context are fixed at creation and cannot be changed here.
        """
        locked = IMMUTABLE_FIELDS.intersection(changes)
        if locked:
            raise ValidationException(f"Fields cannot be modified after creation: {sorted(locked)}")
        entity = self.session.get(ConversationEntity, conversation_id)
        if not entity:
            raise NotFoundException(f"Conversation with ID: {conversation_id} was not found!")
        for field, value in changes.items():
            if not hasattr(entity, field):
                raise ValueError(f"Unknown conversation field: {field}")
            setattr(entity, field, value)
        self.session.commit()
        return self._to_conversation(entity)

    async def touch_activity(self, conversation_id: str, retention_days: int) -> Conversation:
        now = utcnow()
        return await self.save(conversation_id, last_activity_at=now, expires_at=now + timedelta(days=retention_days))

    async def delete_by_id_for_user(self, conversation_id: str, user_id: str) -> bool:
        entity = self.session.scalars(select(ConversationEntity).filter_by(id=conversation_id, user_id=user_id)).first()
        if not entity:
            return False
        self.session.execute(delete(MessageEntity).where(MessageEntity.conversation_id == conversation_id))
        self.session.delete(entity)
        self.session.commit()
        return True

    async def delete_all_by_user(self, user_id: str) -> int:
        ids = list(self.session.scalars(select(ConversationEntity.id).where(ConversationEntity.user_id == user_id)).all())
        if not ids:
            return 0
        self.session.execute(delete(MessageEntity).where(MessageEntity.conversation_id.in_(ids)))
        self.session.execute(delete(ConversationEntity).where(ConversationEntity.id.in_(ids)))
        self.session.commit()
        return len(ids)
