from datetime import timedelta

from sqlalchemy import func, select

from copilot.common.models import Role
from copilot.common.repositories import BaseRepository
from copilot.common.utils import utcnow
from copilot.conversation.conversation_entities import ConversationEntity
from copilot.conversation.conversation_repositories import as_utc
from copilot.conversation.messages import MESSAGE_PARTS_ADAPTER, Message
from copilot.conversation.messages.message_entities import MessageEntity


class MessageRepository(BaseRepository):
    @staticmethod
    def _to_message(entity: MessageEntity) -> Message:
        return Message(
            id=entity.id,
            conversation_id=entity.conversation_id,
            role=Role(entity.role),
            parts=MESSAGE_PARTS_ADAPTER.validate_python(entity.parts or []),
            created_at=as_utc(entity.created_at),
        )

    async def count_user_messages_in_window(self, user_id: str, period_hours: int) -> int:
        """Counts the user's own messages created within the trailing window, across all of their conversations."""
        since = utcnow() - timedelta(hours=period_hours)
        stmt = (
            select(func.count(MessageEntity.id))
            .join(ConversationEntity, ConversationEntity.id == MessageEntity.conversation_id)
            .where(ConversationEntity.user_id == user_id, MessageEntity.role == Role.USER.value, MessageEntity.created_at >= since)
        )
        return self.session.scalar(stmt) or 0

    async def find_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages in chronological order; with a limit, only the most recent ones."""
        if limit is None:
            stmt = select(MessageEntity).where(MessageEntity.conversation_id == conversation_id).order_by(MessageEntity.created_at.asc(), MessageEntity.id.asc())
            return [self._to_message(e) for e in self.session.scalars(stmt).all()]

        stmt = (
            select(MessageEntity)
            .where(MessageEntity.conversation_id == conversation_id)
            .order_by(MessageEntity.created_at.desc(), MessageEntity.id.desc())
            .limit(limit)
        )
        return [self._to_message(e) for e in reversed(self.session.scalars(stmt).all())]

    async def find_messages_after(self, conversation_id: str, message_id: str) -> list[Message]:
        """
        Messages strictly after the watermark message.

        A watermark that does not belong to this conversation yields the full history.
        """
        watermark = self.session.scalars(select(MessageEntity).filter_by(id=message_id, conversation_id=conversation_id)).first()
        if not watermark:
            return await self.find_messages(conversation_id)
        stmt = (
            select(MessageEntity)
            .where(MessageEntity.conversation_id == conversation_id, MessageEntity.created_at > watermark.created_at)
            .order_by(MessageEntity.created_at.asc(), MessageEntity.id.asc())
        )
        return [self._to_message(e) for e in self.session.scalars(stmt).all()]

    async def create_messages(self, messages: list[Message]) -> list[Message]:
        """
        Persists a batch of messages in one commit.

        Each message gets a created_at strictly after the previous one so the batch order survives a sort.
        """
        base = utcnow()
        entities = []
        for offset, message in enumerate(messages):
            created_at = base + timedelta(microseconds=offset)
            entities.append(
                MessageEntity(
                    id=message.id,
                    conversation_id=message.conversation_id,
                    role=message.role.value,
                    parts=message.dump_parts(),
                    created_at=created_at,
                )
            )
        self.session.add_all(entities)
        self.session.commit()
        return [self._to_message(e) for e in entities]
