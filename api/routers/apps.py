"""Application endpoints."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from api.database import Database, get_database
from api.models import CompileResponse, SnapshotResponse, TeardownResponse
from api.services.compiler import CompilerService
from api.settings import get_settings

router = APIRouter(prefix="/api/v1/apps", tags=["Apps"])


def get_compiler(database: Database = Depends(get_database)) -> CompilerService:
    """Compiler bound to the configured cluster and snapshot store."""
    return CompilerService(get_settings().to_context(), database)


# The body stays untyped so that every problem in it is reported together
@router.post("/preview", response_model=CompileResponse)
async def preview_app(
    spec: dict[str, Any] = Body(...),
    compiler: CompilerService = Depends(get_compiler),
) -> CompileResponse:
    """Compile an AppSpec without recording it."""
    return compiler.compile(spec)


@router.post("", response_model=CompileResponse)
async def compile_app(
    spec: dict[str, Any] = Body(...),
    compiler: CompilerService = Depends(get_compiler),
) -> CompileResponse:
    """Compile an AppSpec, diff it against the last recorded graph and record it."""
    return compiler.compile(spec, record=True)


@router.get("", response_model=list[SnapshotResponse])
async def list_apps(compiler: CompilerService = Depends(get_compiler)) -> list[SnapshotResponse]:
    """List recorded applications."""
    return compiler.list_all()


@router.get("/{name}", response_model=SnapshotResponse)
async def get_app(name: str, compiler: CompilerService = Depends(get_compiler)) -> SnapshotResponse:
    """Get the recorded graph of an application."""
    snapshot = compiler.get(name)
    if not snapshot:
        raise HTTPException(status_code=404, detail=f"App '{name}' not found")
    return snapshot


@router.delete("/{name}", response_model=TeardownResponse)
async def delete_app(name: str, compiler: CompilerService = Depends(get_compiler)) -> TeardownResponse:
    """Forget an application and return the order its nodes must be deleted in."""
    teardown = compiler.teardown(name)
    if not teardown:
        raise HTTPException(status_code=404, detail=f"App '{name}' not found")
    return teardown
