"""
Draft endpoints (all scoped to the caller):
  GET    /api/drafts              — list drafts, most recently edited first
  POST   /api/drafts              — create
  GET    /api/drafts/{id}         — fetch
  PUT    /api/drafts/{id}         — replace title + content
  DELETE /api/drafts/{id}         — delete
  POST   /api/drafts/{id}/publish — publish as a thread, deleting the draft
"""
import logging

from fastapi import APIRouter, Depends, Response, status

from threadspire.dependencies import get_draft_service
from threadspire.schemas import DraftCreate, DraftResponse, DraftUpdate, ThreadResponse
from threadspire.services.drafts import DraftService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=list[DraftResponse])
async def list_drafts(drafts: DraftService = Depends(get_draft_service)):
    return await drafts.list_drafts()


@router.post("", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(body: DraftCreate, drafts: DraftService = Depends(get_draft_service)):
    return await drafts.create_draft(body.title, body.content)


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(draft_id: str, drafts: DraftService = Depends(get_draft_service)):
    return await drafts.get_draft(draft_id)


@router.put("/{draft_id}", response_model=DraftResponse)
async def update_draft(
    draft_id: str, body: DraftUpdate, drafts: DraftService = Depends(get_draft_service)
):
    return await drafts.update_draft(draft_id, body.title, body.content)


@router.delete("/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(draft_id: str, drafts: DraftService = Depends(get_draft_service)):
    await drafts.delete_draft(draft_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{draft_id}/publish", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED
)
async def publish_draft(draft_id: str, drafts: DraftService = Depends(get_draft_service)):
    return await drafts.publish_draft(draft_id)
