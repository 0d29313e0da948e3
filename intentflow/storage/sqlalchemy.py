"""
SQLAlchemy Storage Adapter

Async SQLAlchemy 2.0 conversation store for production persistence.
Uses async engine and session for all operations.

Compatible with:
- SQLite (aiosqlite)
- PostgreSQL (asyncpg)
- MySQL (aiomysql)
"""

from datetime import timezone

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from intentflow.state.models import AgentContext, ConversationState, ConversationTurn
from intentflow.storage.models import ConversationModel
from intentflow.storage.ports import ConversationStateStore, StorageError


# =============================================================================
# Converters
# =============================================================================

def conversation_model_to_state(model: ConversationModel) -> ConversationState:
    """Convert SQLAlchemy model to ConversationState."""
    last_activity = model.last_activity
    if last_activity.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC.
        last_activity = last_activity.replace(tzinfo=timezone.utc)

    return ConversationState(
        conversation_id=model.conversation_id,
        user_id=model.user_id,
        current_intent=model.current_intent,
        entities=model.entities or {},
        history=[ConversationTurn.model_validate(turn) for turn in model.history or []],
        last_activity=last_activity,
        agent_context=AgentContext.model_validate(model.agent_context or {}),
    )


def _apply_state(model: ConversationModel, state: ConversationState) -> None:
    dumped = state.model_dump(mode="json")
    model.user_id = state.user_id
    model.current_intent = state.current_intent
    model.entities = dumped["entities"]
    model.history = dumped["history"]
    model.agent_context = dumped["agent_context"]
    model.last_activity = state.last_activity


# =============================================================================
# SQLAlchemy Conversation Store
# =============================================================================

class SqlAlchemyConversationStore(ConversationStateStore):
    """
    SQLAlchemy-based conversation storage.

    One row per conversation; `save` upserts the whole row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        """
        Args:
            session_factory: Async session factory bound to the engine
            engine: Engine to dispose on `close()` when the store owns it
        """
        self._session_factory = session_factory
        self._engine = engine

    async def load(self, conversation_id: str) -> ConversationState | None:
        try:
            async with self._session_factory() as session:
                model = await session.get(ConversationModel, conversation_id)
                if model is None:
                    return None
                return conversation_model_to_state(model)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load conversation {conversation_id}: {e}") from e

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    model = await session.get(ConversationModel, conversation_id)
                    if model is None:
                        model = ConversationModel(conversation_id=conversation_id)
                        _apply_state(model, state)
                        session.add(model)
                    else:
                        _apply_state(model, state)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save conversation {conversation_id}: {e}") from e

    async def delete(self, conversation_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(ConversationModel).where(
                            ConversationModel.conversation_id == conversation_id
                        )
                    )
                    return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete conversation {conversation_id}: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
