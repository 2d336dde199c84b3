"""Public catalogue endpoints: modules and learning paths (no auth)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.catalog import service
from lms.database import get_session

router = APIRouter(prefix="/api/v1", tags=["Catalog"])


@router.get("/modules")
async def list_modules(db: AsyncSession = Depends(get_session)) -> dict:
    return {"modules": await service.list_modules(db)}


@router.get("/modules/{module_id}")
async def get_module(module_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    """Module with ordered chapters and lesson summaries."""
    return {"module": await service.module_detail(db, module_id)}


@router.get("/modules/{module_id}/prerequisites")
async def get_prerequisites(module_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    return await service.module_prerequisites(db, module_id)


@router.get("/modules/{module_id}/roadmap")
async def get_roadmap(module_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    return await service.module_roadmap(db, module_id)


@router.get("/learning-paths")
async def list_learning_paths(db: AsyncSession = Depends(get_session)) -> dict:
    return {"paths": await service.list_learning_paths(db)}


@router.get("/learning-paths/{path_id}")
async def get_learning_path(path_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    return {"path": await service.get_learning_path(db, path_id)}
