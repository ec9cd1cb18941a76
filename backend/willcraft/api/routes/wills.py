"""
Will API Routes

CRUD for wills, the section update endpoint that drives the
interview and the PDF export. Every route is scoped to the authenticated user.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field

from willcraft.api.dependencies import get_current_user
from willcraft.api.responses import success_response
from willcraft.domain.subscription import User
from willcraft.domain.will import Will, WillPatch
from willcraft.infrastructure.services.will_service import (
    WillService,
    get_will_service,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request DTOs
# =============================================================================

class CreateWillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    state_compliance: Optional[str] = Field(default=None, alias="stateCompliance")


class SectionUpdateRequest(BaseModel):
    section: Optional[str] = None
    data: Optional[Any] = None


def _will_payload(will: Will) -> dict:
    return will.model_dump(mode="json", by_alias=True)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/will", status_code=status.HTTP_201_CREATED)
async def create_will(
    request: CreateWillRequest,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    """Create an empty draft will for the given jurisdiction."""
    will = await service.create(user, request.state_compliance)
    return success_response(
        status=status.HTTP_201_CREATED,
        id=will.id,
        message="Will created successfully",
    )


@router.get("/will")
async def list_wills(
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    """List the caller's wills, most recently updated first."""
    wills = await service.list(user)
    return success_response(
        data=[summary.model_dump(mode="json", by_alias=True) for summary in wills]
    )


@router.get("/will/{will_id}")
async def get_will(
    will_id: str,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    will = await service.get(user, will_id)
    return success_response(data=_will_payload(will))


@router.put("/will/{will_id}")
async def update_will(
    will_id: str,
    patch: WillPatch,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    """
    Whole-record update.

    Accepts sections, documents, photos and a forward status change.
    Progress is recomputed server side.
    """
    will = await service.update(user, will_id, patch)
    return success_response(data=_will_payload(will))


@router.delete("/will/{will_id}")
async def delete_will(
    will_id: str,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    await service.delete(user, will_id)
    return success_response(message="Will deleted successfully")


@router.put("/will/{will_id}/section")
async def update_section(
    will_id: str,
    request: SectionUpdateRequest,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    """Save one interview section and return the updated will."""
    will = await service.apply_section(user, will_id, request.section, request.data)
    return success_response(data=_will_payload(will))


@router.post("/will/{will_id}/generate-pdf")
async def generate_pdf(
    will_id: str,
    user: User = Depends(get_current_user),
    service: WillService = Depends(get_will_service),
):
    """Download the will as a PDF. Requires an active subscription."""
    will, content = await service.export_pdf(user, will_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="will-{will.id}.pdf"'},
    )
