import pytest

from threadspire.errors import AccessDeniedError, NotFoundError, ValidationError
from threadspire.services.collections import CollectionService
from threadspire.services.threads import ThreadService


@pytest.fixture
async def threads(backend, alice, bob):
    async with backend.session() as db:
        public = await ThreadService(db, alice, backend).create_thread("Public", ["x"])
    async with backend.session() as db:
        private = await ThreadService(db, bob, backend).create_thread(
            "Bob's secret", ["x"], is_private=True
        )
    return public, private


async def test_collection_lifecycle(backend, alice, threads):
    public, _ = threads
    async with backend.session() as db:
        collection = await CollectionService(db, alice, backend).create_collection("Reading list")
    assert collection.is_private is True

    async with backend.session() as db:
        svc = CollectionService(db, alice, backend)
        await svc.add_thread_to_collection(collection.id, public.id)
        await svc.add_thread_to_collection(collection.id, public.id)
    async with backend.session() as db:
        full = await CollectionService(db, alice, backend).get_collection(collection.id)
    assert [t.id for t in full.threads] == [public.id]

    async with backend.session() as db:
        renamed = await CollectionService(db, alice, backend).update_collection(
            collection.id, name="Favourites", is_private=False
        )
    assert (renamed.name, renamed.is_private) == ("Favourites", False)

    async with backend.session() as db:
        await CollectionService(db, alice, backend).remove_thread_from_collection(
            collection.id, public.id
        )
    async with backend.session() as db:
        assert (await CollectionService(db, None, backend).get_collection(collection.id)).threads == []

    async with backend.session() as db:
        await CollectionService(db, alice, backend).delete_collection(collection.id)
    async with backend.session() as db:
        with pytest.raises(NotFoundError):
            await CollectionService(db, alice, backend).get_collection(collection.id)


async def test_private_collection_is_owner_only(backend, alice, bob):
    async with backend.session() as db:
        collection = await CollectionService(db, alice, backend).create_collection("Mine")
    async with backend.session() as db:
        with pytest.raises(AccessDeniedError):
            await CollectionService(db, bob, backend).get_collection(collection.id)
        with pytest.raises(AccessDeniedError):
            await CollectionService(db, bob, backend).update_collection(collection.id, name="Ours")
        assert await CollectionService(db, bob, backend).get_user_collections() == []


async def test_cannot_collect_someone_elses_private_thread(backend, alice, threads):
    _, private = threads
    async with backend.session() as db:
        collection = await CollectionService(db, alice, backend).create_collection("Spy")
    async with backend.session() as db:
        with pytest.raises(AccessDeniedError):
            await CollectionService(db, alice, backend).add_thread_to_collection(
                collection.id, private.id
            )


async def test_collection_name_required(backend, alice):
    async with backend.session() as db:
        with pytest.raises(ValidationError):
            await CollectionService(db, alice, backend).create_collection("   ")


async def test_subscribe_to_collections(backend, alice):
    seen = []

    async def record(collections):
        seen.append([c.name for c in collections])

    CollectionService(None, alice, backend).subscribe_to_collections(record)
    async with backend.session() as db:
        await CollectionService(db, alice, backend).create_collection("First")
    assert seen == [["First"]]
