from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_repository
from ..db import ItemRepository

router = APIRouter(tags=["health"])

@router.get("/health")
async def health(repository: Annotated[ItemRepository, Depends(get_repository)]):
    vector_index = await repository.vector_extension_installed()
    return {"status": "ok" if vector_index else "degraded", "vector_index": vector_index}
