import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import ASGITransport, AsyncClient

from frontdesk.web.app import create_app

PASSWORD = "s3cret-pass"


def _redirect(resp) -> tuple[str, dict[str, list[str]]]:
    assert resp.status_code == 303, resp.text
    parts = urlsplit(resp.headers["location"])
    return parts.path, parse_qs(parts.query)


@pytest.mark.integration
class TestPublicPages:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/directory", "/demo-chat", "/login"])
    async def test_public_pages_render_anonymously(self, client, path) -> None:
        resp = await client.get(path)
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_business_page_by_slug(self, client, accounts) -> None:
        resp = await client.get("/b/slug-b1")
        assert resp.status_code == 200
        assert "Biz b1" in resp.text

    @pytest.mark.asyncio
    async def test_unknown_business_is_404(self, client) -> None:
        assert (await client.get("/b/nowhere")).status_code == 404

    @pytest.mark.asyncio
    async def test_business_page_when_backend_down(self, client, accounts, backend) -> None:
        backend.fail_reads = True
        assert (await client.get("/b/slug-b1")).status_code == 404

    @pytest.mark.asyncio
    async def test_marketplace_hidden_by_default(self, client) -> None:
        assert (await client.get("/marketplace")).status_code == 404

    @pytest.mark.asyncio
    async def test_marketplace_when_enabled(
        self, test_settings, directory, backend, selection_store
    ) -> None:
        settings = test_settings.model_copy(update={"marketplace_enabled": True})
        app = create_app(settings, directory, backend, selection_store)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="https://test") as http:
            assert (await http.get("/marketplace")).status_code == 200


@pytest.mark.integration
class TestGuardedPages:
    @pytest.mark.asyncio
    async def test_anonymous_dashboard_goes_to_login(self, client) -> None:
        path, query = _redirect(await client.get("/dashboard/leads"))
        assert path == "/login"
        assert query["next"] == ["/dashboard/leads"]
        assert query["message"]

    @pytest.mark.asyncio
    async def test_owner_sees_dashboard(self, client, login, accounts) -> None:
        await login("owner@example.com")
        resp = await client.get("/dashboard")
        assert resp.status_code == 200
        assert "Biz b1" in resp.text
        assert "Settings" in resp.text

    @pytest.mark.asyncio
    async def test_owner_section_pages(self, client, login, accounts) -> None:
        await login("owner@example.com")
        assert (await client.get("/dashboard/leads")).status_code == 200
        assert (await client.get("/dashboard/settings")).status_code == 200
        assert (await client.get("/dashboard/unknown")).status_code == 404

    @pytest.mark.asyncio
    async def test_client_on_dashboard_goes_home_with_message(
        self, client, login, accounts
    ) -> None:
        await login("client@example.com")
        path, query = _redirect(await client.get("/dashboard"))
        assert path == "/client"
        assert query["message"]
        assert (await client.get("/client")).status_code == 200

    @pytest.mark.asyncio
    async def test_owner_on_client_page_goes_to_dashboard(self, client, login, accounts) -> None:
        await login("owner@example.com")
        path, _ = _redirect(await client.get("/client"))
        assert path == "/dashboard"

    @pytest.mark.asyncio
    async def test_owner_without_business_goes_to_onboarding(
        self, client, login, accounts
    ) -> None:
        await login("new@example.com")
        path, _ = _redirect(await client.get("/dashboard"))
        assert path == "/onboarding"
        assert (await client.get("/onboarding")).status_code == 200

    @pytest.mark.asyncio
    async def test_staff_denied_settings(self, client, login, accounts) -> None:
        await login("staff@example.com")
        assert (await client.get("/dashboard/leads")).status_code == 200
        path, query = _redirect(await client.get("/dashboard/settings"))
        assert path == "/dashboard"
        assert "permission" in query["message"][0]

    @pytest.mark.asyncio
    async def test_staff_sidebar_hides_owner_links(self, client, login, accounts) -> None:
        await login("staff@example.com")
        resp = await client.get("/dashboard")
        assert '<a href="/dashboard/leads">' in resp.text
        assert '<a href="/dashboard/settings">' not in resp.text

    @pytest.mark.asyncio
    async def test_redirects_land_on_renderable_pages(self, client, login, accounts) -> None:
        for email in ["owner@example.com", "staff@example.com", "client@example.com",
                      "new@example.com"]:
            await login(email)
            for path in ["/dashboard", "/dashboard/team", "/onboarding", "/client"]:
                resp = await client.get(path)
                if resp.status_code == 303:
                    target, _ = _redirect(resp)
                    assert (await client.get(target)).status_code == 200, (email, path)
            await client.post("/api/auth/logout")


@pytest.mark.integration
class TestLoadingState:
    @pytest.mark.asyncio
    async def test_slow_backend_renders_loading_page(
        self, test_settings, directory, backend, selection_store, accounts
    ) -> None:
        settings = test_settings.model_copy(
            update={"guard_wait_seconds": 0.05, "membership_timeout_seconds": 2.0}
        )
        backend.delay_seconds = 0.5
        app = create_app(settings, directory, backend, selection_store)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="https://test") as http:
            await http.get("/api/health")
            sign_in = asyncio.create_task(
                http.post(
                    "/api/auth/login",
                    json={"email": "owner@example.com", "password": PASSWORD},
                )
            )
            await asyncio.sleep(0.1)
            resp = await http.get("/dashboard")
            assert resp.status_code == 200
            assert "Loading" in resp.text
            assert resp.headers["cache-control"] == "no-store"

            assert (await sign_in).json()["redirect"] == "/dashboard"
            assert (await http.get("/dashboard")).status_code == 200
