"""
Collection service: user-owned named lists of threads.

Collections are private by default. A public collection can be read by
anyone, but only its owner may change it; threads inside a collection are
still filtered by the viewer's thread visibility.
"""
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy import delete, select

from threadspire.errors import AccessDeniedError, NotFoundError, ValidationError
from threadspire.models import Collection, CollectionThread, utcnow
from threadspire.realtime import DELETE, INSERT, UPDATE, Subscription
from threadspire.schemas import CollectionResponse, CollectionWithThreads
from threadspire.services.base import Service, visibility_clause
from threadspire.services.hydrate import load_thread_responses

logger = logging.getLogger(__name__)


class CollectionService(Service):

    async def _get_owned(self, collection_id: str) -> Collection:
        user = self.require_viewer()
        collection = await self.db.get(Collection, collection_id)
        if collection is None:
            raise NotFoundError("Collection")
        if collection.user_id != user.id:
            raise AccessDeniedError("Only the owner can change this collection")
        return collection

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Collection name is required")
        return name

    async def create_collection(self, name: str, is_private: bool = True) -> CollectionResponse:
        user = self.require_viewer()
        collection = Collection(user_id=user.id, name=self._clean_name(name), is_private=is_private)
        self.db.add(collection)
        await self.db.flush()
        self.stage("collections", INSERT, id=collection.id, user_id=user.id)
        logger.info("Collection created: %s by user %s", collection.id, user.id)
        return CollectionResponse.model_validate(collection)

    async def get_collection(self, collection_id: str) -> CollectionWithThreads:
        collection = await self.db.get(Collection, collection_id)
        if collection is None:
            raise NotFoundError("Collection")
        if collection.is_private and (self.viewer is None or self.viewer.id != collection.user_id):
            raise AccessDeniedError("This collection is private.")

        rows = await self.db.execute(
            select(CollectionThread.thread_id)
            .where(CollectionThread.collection_id == collection_id)
            .order_by(CollectionThread.created_at.desc(), CollectionThread.thread_id)
        )
        threads = await load_thread_responses(
            self.db, list(rows.scalars().all()), visibility_clause(self.viewer)
        )
        return CollectionWithThreads(
            **CollectionResponse.model_validate(collection).model_dump(), threads=threads
        )

    async def get_user_collections(self) -> list[CollectionResponse]:
        user = self.require_viewer()
        rows = await self.db.execute(
            select(Collection)
            .where(Collection.user_id == user.id)
            .order_by(Collection.created_at.desc(), Collection.id)
        )
        return [CollectionResponse.model_validate(c) for c in rows.scalars().all()]

    async def update_collection(
        self, collection_id: str, name: Optional[str] = None, is_private: Optional[bool] = None
    ) -> CollectionResponse:
        collection = await self._get_owned(collection_id)
        if name is not None:
            collection.name = self._clean_name(name)
        if is_private is not None:
            collection.is_private = is_private
        collection.updated_at = utcnow()
        await self.db.flush()
        self.stage("collections", UPDATE, id=collection.id, user_id=collection.user_id)
        return CollectionResponse.model_validate(collection)

    async def delete_collection(self, collection_id: str) -> None:
        collection = await self._get_owned(collection_id)
        await self.db.execute(
            delete(CollectionThread).where(CollectionThread.collection_id == collection_id)
        )
        await self.db.delete(collection)
        await self.db.flush()
        self.stage("collections", DELETE, id=collection_id, user_id=collection.user_id)
        logger.info("Collection deleted: %s", collection_id)

    async def add_thread_to_collection(self, collection_id: str, thread_id: str) -> None:
        collection = await self._get_owned(collection_id)
        await self.get_visible_thread(thread_id)
        if await self.db.get(CollectionThread, (collection_id, thread_id)) is None:
            self.db.add(CollectionThread(collection_id=collection_id, thread_id=thread_id))
            collection.updated_at = utcnow()
            await self.db.flush()
            self.stage("collections", UPDATE, id=collection_id, user_id=collection.user_id)

    async def remove_thread_from_collection(self, collection_id: str, thread_id: str) -> None:
        collection = await self._get_owned(collection_id)
        result = await self.db.execute(
            delete(CollectionThread).where(
                CollectionThread.collection_id == collection_id,
                CollectionThread.thread_id == thread_id,
            )
        )
        if result.rowcount:
            collection.updated_at = utcnow()
            await self.db.flush()
            self.stage("collections", UPDATE, id=collection_id, user_id=collection.user_id)

    def subscribe_to_collections(
        self, callback: Callable[[list[CollectionResponse]], Awaitable[None]]
    ) -> Subscription:
        """Call ``callback`` with the viewer's collections after any change to them."""
        viewer, backend = self.require_viewer(), self.backend

        async def _on_change(event) -> None:
            async with backend.session() as db:
                collections = await CollectionService(db, viewer, backend).get_user_collections()
            await callback(collections)

        return backend.changes.subscribe("collections", _on_change, match={"user_id": viewer.id})
