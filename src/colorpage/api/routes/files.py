"""File ownership API endpoints.

- POST /api/files/associate - move an anonymous page into the caller's library
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from colorpage.api.dependencies import get_storage_stage, require_user_id
from colorpage.services.exceptions import OwnershipConflict, StorageError
from colorpage.services.generation.storage import StorageStage

logger = structlog.get_logger()
router = APIRouter(prefix="/api/files", tags=["files"])


class AssociateFileRequest(BaseModel):
    path: str = Field(..., description="Anonymous storage path (public/...)", max_length=512)
    nonce: str = Field(..., description="Ownership nonce issued with the anonymous result")


class AssociateFileResponse(BaseModel):
    path: str
    url: str


@router.post("/associate", response_model=AssociateFileResponse)
async def associate_file(
    request: AssociateFileRequest,
    user_id: str = Depends(require_user_id),
    storage_stage: StorageStage = Depends(get_storage_stage),
) -> AssociateFileResponse:
    """Claim an anonymous file by proving authorship with its nonce."""
    try:
        stored = await storage_stage.associate_file_with_user(request.path, request.nonce, user_id)
    except OwnershipConflict as e:
        logger.info("files.associate_rejected", path=request.path, user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.user_message)
    except StorageError as e:
        logger.error("files.associate_failed", path=request.path, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.user_message)

    return AssociateFileResponse(path=stored.path, url=stored.url)
