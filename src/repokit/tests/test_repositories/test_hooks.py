import pytest
from sqlalchemy import select

from repokit.exceptions.base import NotFoundError, ValidationError
from repokit.tests.test_fixtures.models import Post
from repokit.tests.test_fixtures.repository_fixtures import PostRepository


class PublishingPostRepository(PostRepository):
    async def before_create(self, attributes):
        attributes["status"] = "published"
        attributes.setdefault("views", 1)


class RejectingPostRepository(PostRepository):
    async def before_create(self, attributes):
        raise PermissionError("posts are closed")


@pytest.mark.asyncio
class TestLifecycleHooks:

    async def test_boot_runs_once_in_constructor(self, recording_post_repo):
        assert recording_post_repo.calls == [("boot",)]

    async def test_create_hooks_run_in_order_with_cast_attributes(self, recording_post_repo):
        """
        Behavior:
            - before_create sees the cast attributes, after_create sees the persisted entity.
            - Each hook runs exactly once.

        Fixtures:
            - recording_post_repo: PostRepository that appends every hook call to `calls`.
        """
        post = await recording_post_repo.create({"title": "Hooked", "views": "5"})

        assert recording_post_repo.names() == ["boot", "before_create", "after_create"]
        assert recording_post_repo.calls[1] == ("before_create", {"title": "Hooked", "views": 5})
        assert recording_post_repo.calls[2] == ("after_create", post.id, {"title": "Hooked", "views": 5})

    async def test_before_create_mutations_are_persisted(self, db_session):
        repo = PublishingPostRepository(db_session)
        post = await repo.create({"title": "Auto published"})

        assert post.status == "published"
        assert post.views == 1

    async def test_raising_before_create_aborts_without_persisting(self, db_session):
        """
        Behavior:
            - An exception from a hook propagates unchanged; nothing reaches the database.
        """
        repo = RejectingPostRepository(db_session)

        with pytest.raises(PermissionError, match="posts are closed"):
            await repo.create({"title": "Never stored"})

        assert (await db_session.execute(select(Post))).scalars().all() == []

    async def test_validation_failure_skips_after_create(self, recording_post_repo):
        with pytest.raises(ValidationError):
            await recording_post_repo.create({"title": "no"})

        assert recording_post_repo.names() == ["boot", "before_create"]

    async def test_update_hooks(self, recording_post_repo, create_post):
        post = await create_post(title="Original")

        await recording_post_repo.update({"title": "Changed"}, post.id)

        assert recording_post_repo.names() == ["boot", "before_update", "after_update"]
        assert recording_post_repo.calls[1] == ("before_update", post.id, {"title": "Changed"})

    async def test_update_of_missing_row_calls_no_hooks(self, recording_post_repo):
        with pytest.raises(NotFoundError):
            await recording_post_repo.update({"title": "Changed"}, 999)

        assert recording_post_repo.names() == ["boot"]

    async def test_delete_hooks_run_once(self, recording_post_repo, create_post):
        post = await create_post()

        assert await recording_post_repo.delete(post.id) is True

        assert recording_post_repo.names() == ["boot", "before_delete", "after_delete"]
        assert recording_post_repo.calls[-1] == ("after_delete", post.id, True)

    async def test_restore_hooks_run_once_including_sync_hook(self, recording_post_repo, create_post):
        """
        Behavior:
            - restore finds the trashed row and runs before_restore/after_restore once each.
            - A plain (non-async) hook override is called like an async one.
        """
        post = await create_post()
        await recording_post_repo.delete(post.id)

        assert await recording_post_repo.restore(post.id) is True

        assert recording_post_repo.names() == [
            "boot", "before_delete", "after_delete", "before_restore", "after_restore",
        ]
