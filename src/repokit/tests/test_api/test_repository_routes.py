"""
End-to-end: repositories injected into FastAPI routes through `provide_repository`,
errors rendered by the registered handlers, pagination links built from the
request that `RequestContextMiddleware` recorded.
"""
from typing import Annotated, Any

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from repokit.api.error_handlers import register_exception_handlers
from repokit.core.dependencies import get_db_session, get_validation_factory, provide_repository
from repokit.core.logging.middleware import RequestContextMiddleware
from repokit.repositories import BaseRepository
from repokit.tests.test_fixtures.repository_fixtures import AuthorRepository, PostRepository


class MisconfiguredRepository(BaseRepository):
    model = "NoSuchModel"


AuthorRepo = Annotated[AuthorRepository, Depends(provide_repository(AuthorRepository))]
PostRepo = Annotated[PostRepository, Depends(provide_repository(PostRepository))]


def make_app(db_session) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    async def override_db_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_db_session

    @app.post("/authors", status_code=201)
    async def create_author(payload: dict[str, Any], repo: AuthorRepo):
        author = await repo.create(payload)
        return {"id": author.id, "name": author.name, "age": author.age}

    @app.get("/authors/{author_id}")
    async def show_author(author_id: int, repo: AuthorRepo):
        author = await repo.find(author_id)
        return {"id": author.id, "name": author.name}

    @app.get("/posts")
    async def index_posts(repo: PostRepo):
        page = await repo.order_by("id").paginate(limit=2)
        return {
            "titles": [p.title for p in page.items],
            "total": page.total,
            "next_page_url": page.next_page_url,
            "prev_page_url": page.prev_page_url,
        }

    @app.get("/broken")
    async def broken(repo: Annotated[MisconfiguredRepository, Depends(provide_repository(MisconfiguredRepository))]):
        return {"never": "reached"}

    return app


@pytest.fixture
async def client(db_session):
    transport = ASGITransport(app=make_app(db_session))
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.mark.asyncio
class TestRepositoryRoutes:

    async def test_create_and_show(self, client):
        resp = await client.post("/authors", json={"name": "Grace", "email": "grace@example.com", "age": "45"})
        assert resp.status_code == 201
        created = resp.json()
        assert created["age"] == 45

        resp = await client.get(f"/authors/{created['id']}")
        assert resp.json() == {"id": created["id"], "name": "Grace"}

    async def test_validation_errors_are_rendered(self, client):
        resp = await client.post("/authors", json={"name": "Grace"})
        assert resp.status_code == 422
        assert resp.json()["errors"] == {"email": ["The email field is required."]}

    async def test_duplicate_is_a_conflict(self, client, author):
        resp = await client.post("/authors", json={"name": "Ada again", "email": author.email})
        assert resp.status_code == 409
        assert resp.json()["fields"] == ["email"]

    async def test_unknown_attribute_is_rejected(self, client):
        resp = await client.post("/authors", json={"name": "G", "email": "g@example.com", "is_admin": True})
        assert resp.status_code == 422
        assert resp.json() == {
            "detail": "Unknown field(s) for Author: is_admin",
            "code": "invalid_field",
            "fields": ["is_admin"],
        }

    async def test_missing_row_is_404(self, client):
        resp = await client.get("/authors/404")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    async def test_misconfigured_repository_is_500(self, client):
        resp = await client.get("/broken")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error", "code": "configuration"}

    async def test_pagination_links_follow_the_request(self, client, create_post):
        """
        Behavior:
            - The page comes from `?page=`; links keep the other query params.
        """
        for i in range(1, 6):
            await create_post(title=f"Entry {i}")

        resp = await client.get("/posts", params={"status": "draft", "page": "2"})

        body = resp.json()
        assert body["titles"] == ["Entry 3", "Entry 4"]
        assert body["total"] == 5
        assert body["next_page_url"] == "http://testserver/posts?status=draft&page=3"
        assert body["prev_page_url"] == "http://testserver/posts?status=draft&page=1"

    async def test_request_id_is_echoed(self, client):
        resp = await client.get("/posts", headers={"X-Request-ID": "trace-me"})
        assert resp.headers["X-Request-ID"] == "trace-me"


def test_validation_factory_is_shared():
    assert get_validation_factory() is get_validation_factory()
