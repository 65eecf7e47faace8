from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import ItemRepository, get_async_session
from ..embeddings.embedder import Embedder
from ..triggers.bus import TriggerBus, trigger_bus


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


async def get_repository(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[ItemRepository, None]:
    yield ItemRepository(session)


def get_trigger_bus() -> TriggerBus:
    return trigger_bus
