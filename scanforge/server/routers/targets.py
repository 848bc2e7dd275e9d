"""Direct scan targets: local folders scanned in place instead of from staging."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from scanforge.errors import ErrorCode, ScanForgeError
from scanforge.server.state import get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/targets", tags=["targets"])


class DirectTargetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    folder_path: str = Field(..., alias="folderPath", min_length=1, max_length=4096)


def _describe(target_id: str, folder_path: str):
    return {"id": target_id, "folderPath": folder_path, "directScan": True}


@router.post("/direct")
async def register_direct_target(req: DirectTargetRequest):
    registry = get_state().registry
    target_id = registry.register(req.folder_path.strip())
    return _describe(target_id, str(registry.get_path(target_id)))


@router.get("/direct")
async def list_direct_targets():
    mappings = get_state().registry.mappings()
    return [_describe(target_id, path) for target_id, path in mappings.items()]


@router.delete("/direct/{target_id}")
async def unregister_direct_target(target_id: str):
    if not get_state().registry.unregister(target_id):
        raise ScanForgeError(
            f"Direct scan target not found: {target_id}",
            details={"target_id": target_id},
            code=ErrorCode.SCAN_TARGET_INVALID,
            http_status=404,
        )
    return {"id": target_id, "removed": True}
