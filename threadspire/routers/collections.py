"""
Collection endpoints:
  GET    /api/collections                         — the caller's collections
  POST   /api/collections                         — create
  GET    /api/collections/{id}                    — collection with its threads
  PATCH  /api/collections/{id}                    — rename / change privacy
  DELETE /api/collections/{id}                    — delete
  PUT    /api/collections/{id}/threads/{thread_id} — add a thread
  DELETE /api/collections/{id}/threads/{thread_id} — remove a thread
"""
import logging

from fastapi import APIRouter, Depends, Response, status

from threadspire.dependencies import get_collection_service
from threadspire.schemas import (
    CollectionCreate,
    CollectionResponse,
    CollectionUpdate,
    CollectionWithThreads,
)
from threadspire.services.collections import CollectionService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=list[CollectionResponse])
async def list_collections(collections: CollectionService = Depends(get_collection_service)):
    return await collections.get_user_collections()


@router.post("", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
async def create_collection(
    body: CollectionCreate, collections: CollectionService = Depends(get_collection_service)
):
    return await collections.create_collection(body.name, body.is_private)


@router.get("/{collection_id}", response_model=CollectionWithThreads)
async def get_collection(
    collection_id: str, collections: CollectionService = Depends(get_collection_service)
):
    return await collections.get_collection(collection_id)


@router.patch("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: str,
    body: CollectionUpdate,
    collections: CollectionService = Depends(get_collection_service),
):
    return await collections.update_collection(collection_id, body.name, body.is_private)


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(
    collection_id: str, collections: CollectionService = Depends(get_collection_service)
):
    await collections.delete_collection(collection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{collection_id}/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def add_thread(
    collection_id: str,
    thread_id: str,
    collections: CollectionService = Depends(get_collection_service),
):
    await collections.add_thread_to_collection(collection_id, thread_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{collection_id}/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_thread(
    collection_id: str,
    thread_id: str,
    collections: CollectionService = Depends(get_collection_service),
):
    await collections.remove_thread_from_collection(collection_id, thread_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
