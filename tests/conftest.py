import asyncio, time
from pathlib import Path
import httpx
import pytest
from cardapio_padaria.api.app import create_app
from cardapio_padaria.api.auth import hash_password
from cardapio_padaria.client.broadcast import BroadcastChannel, BroadcastHub
from cardapio_padaria.client.local_cache import LocalCache
from cardapio_padaria.client.synced_data import SyncedData
from cardapio_padaria.core.errors import TransientError
from cardapio_padaria.core.settings import Settings, ClientSettings
from cardapio_padaria.ports.interfaces import Category, MenuItem, SyncResult

ADMIN_PASSWORD = "pao-quentinho"
SEED_PATH = Path(__file__).resolve().parents[1] / "config" / "seed_menu.json"


def make_category(cid: str, name: str | None = None, order: int | None = 0) -> Category:
    return Category(id=cid, name=name or cid.title(), order=order)


def make_product(pid: str, category: str = "paes", price: float = 5.0, **extra) -> MenuItem:
    return MenuItem(id=pid, name=extra.pop("name", pid.title()), price=price, category=category, **extra)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        secret_key="segredo-de-teste",
        database_url="sqlite://",
        admin_password_hash=hash_password(ADMIN_PASSWORD),
        cookie_secure=False,
        upload_dir=str(tmp_path / "uploads"),
        seed_path=str(SEED_PATH),
        login_rate_limit="100 per minute",
        admin_rate_limit="1000 per minute",
    )


@pytest.fixture
def app(settings):
    flask_app = create_app(settings)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    resp = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client


def flask_transport(flask_app) -> httpx.MockTransport:
    """Encaminha requisições httpx para o test client do Flask (cookies ficam no httpx)."""
    web = flask_app.test_client(use_cookies=False)

    def handler(request: httpx.Request) -> httpx.Response:
        headers = [(k, v) for k, v in request.headers.items() if k.lower() not in ("host", "content-length")]
        resp = web.open(request.url.raw_path.decode(), method=request.method, data=request.content, headers=headers)
        return httpx.Response(resp.status_code, headers=list(resp.headers.items()), content=resp.get_data())

    return httpx.MockTransport(handler)


@pytest.fixture
def client_settings(tmp_path) -> ClientSettings:
    return ClientSettings(
        base_url="http://cardapio.test",
        cache_dir=str(tmp_path / "cache"),
        initial_retry_delay_s=0,
        refresh_retry_base_s=0,
        debounce_s=0.02,
        post_write_refresh_delay_s=0.02,
        poll_interval_s=3600,
    )


class FakeRemote:
    """Backend em memória com falhas programáveis."""
    def __init__(self):
        self.categories: list[Category] = []
        self.products: list[MenuItem] = []
        self.fail_fetch = 0
        self.fail_push: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.stale_reads = False
        self.closed = False
        self.fetch_calls = 0
        self.invalidations = 0
        self.push_calls: list[tuple[list[MenuItem], list[Category]]] = []
        self.logo_calls: list[str | None] = []
        self.config_calls: list[tuple[str, object]] = []

    async def fetch_all(self, force_refresh: bool = False) -> SyncResult:
        self.fetch_calls += 1
        read = self._read()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_fetch:
            self.fail_fetch -= 1
            raise TransientError("servidor indisponível")
        return read if self.stale_reads else self._read()

    def _read(self) -> SyncResult:
        return SyncResult(categories=list(self.categories), products=list(self.products), timestamp=time.time() * 1000)

    async def push_all(self, products, categories) -> None:
        self.push_calls.append((list(products), list(categories)))
        if self.fail_push is not None:
            raise self.fail_push
        self.products, self.categories = list(products), list(categories)

    def invalidate(self) -> None:
        self.invalidations += 1

    async def aclose(self) -> None:
        self.closed = True

    async def save_logo(self, logo) -> None:
        self.logo_calls.append(logo)
        if self.fail_push is not None:
            raise self.fail_push

    async def save_site_config(self, key, value) -> None:
        self.config_calls.append((key, value))
        if self.fail_push is not None:
            raise self.fail_push


@pytest.fixture
def fake_remote() -> FakeRemote:
    remote = FakeRemote()
    remote.categories = [make_category("paes", "Pães", 0), make_category("doces", "Doces", 1)]
    remote.products = [make_product("pao-frances", "paes", 0.9), make_product("sonho", "doces", 7.0)]
    return remote


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def cache(client_settings) -> LocalCache:
    return LocalCache(client_settings.cache_dir)


@pytest.fixture
async def synced(fake_remote, cache, hub, client_settings):
    data = SyncedData(fake_remote, cache, BroadcastChannel(client_settings.broadcast_channel, hub), client_settings)
    async with data:
        await data.wait_idle()
        yield data


@pytest.fixture
def remote_factory():
    return FakeRemote
