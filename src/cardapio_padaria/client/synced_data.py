
"""Estado sincronizado do cardápio no cliente.

Uma instância por aba. Dona do estado canônico em memória e dos gatilhos de
refresh: montagem, polling (30s), sinal externo com debounce (200ms) e refresh
atrasado após escrita (~500ms). Não há canal de push em tempo real: ele corria
contra escritas em andamento e desfazia mudanças na tela.

Estados: Uninitialized -> CacheHydrated (se havia cache) -> Loading ->
Synced | Degraded -> Loading ...
"""
from __future__ import annotations
import asyncio, time
from enum import Enum
from typing import Any, Callable
from kink import di
from pydantic import BaseModel
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type
from ..core.settings import ClientSettings
from ..core.errors import CardapioError, TransientError
from ..core.logging import get_logger
from ..domain.reserved import partition_products
from ..domain.services.menu_service import sort_categories
from ..ports.interfaces import Category, MenuItem, RemoteStore, SnapshotStore
from .broadcast import BroadcastChannel, BroadcastMessage, MessageBus, Subscription

log = get_logger("synced_data")

OFFLINE_PREFIX = "Sincronização offline"

class _Unset(Enum):
    UNSET = "UNSET"

UNSET = _Unset.UNSET

class SyncedState(BaseModel):
    categories: list[Category] = []
    products: list[MenuItem] = []
    logo: str | None = None
    site_config: dict[str, Any] = {}
    loading: bool = True
    error: str | None = None
    last_sync: float | None = None
    realtime_connected: bool = False

def _now_ms() -> float:
    return time.time() * 1000

class SyncedData:
    """Mantém o estado sincronizado com o backend, cache local e outras abas."""
    def __init__(self, remote: RemoteStore, cache: SnapshotStore, channel: BroadcastChannel,
                 settings: ClientSettings | None = None):
        self.s = settings or di[ClientSettings]
        self.remote = remote
        self.cache = cache
        self.channel = channel
        self._state = SyncedState()
        self._listeners: MessageBus[SyncedState] = MessageBus("synced-state")
        self._mounted = False
        self._in_flight = False
        self._rerun = False
        self._write_seq = 0
        self._tasks: set[asyncio.Task] = set()
        self._poll_task: asyncio.Task | None = None
        self._debounce: asyncio.TimerHandle | None = None
        self._delayed: asyncio.TimerHandle | None = None
        self._channel_sub: Subscription | None = None

    # ---------- ciclo de vida ----------
    async def start(self) -> None:
        """Monta: hidrata do cache, dispara o primeiro refresh e o polling."""
        if self._mounted:
            return
        self._mounted = True
        self._hydrate_from_cache()
        self._channel_sub = self.channel.on_message(self._on_broadcast)
        self._spawn_refresh()
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def aclose(self) -> None:
        """Desmonta. Fetch em andamento não é abortado; o resultado é descartado."""
        self._mounted = False
        for handle in (self._debounce, self._delayed):
            if handle is not None:
                handle.cancel()
        self._debounce = self._delayed = None
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._channel_sub is not None:
            self._channel_sub.unsubscribe()
            self._channel_sub = None
        self.channel.close()

    async def __aenter__(self) -> "SyncedData":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def wait_idle(self) -> None:
        """Aguarda os refreshes já disparados terminarem."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- estado ----------
    def snapshot(self) -> SyncedState:
        return self._state.model_copy(deep=True)

    def subscribe(self, listener: Callable[[SyncedState], None]) -> Subscription:
        """Listener chamado com o novo estado após cada mudança."""
        return self._listeners.subscribe(listener)

    def _set(self, **changes: Any) -> None:
        if "categories" in changes:
            changes["categories"] = sort_categories(changes["categories"])
        self._state = self._state.model_copy(update=changes)
        self._listeners.publish(self.snapshot())

    def apply_optimistic(self, categories: list[Category] | None = None, products: list[MenuItem] | None = None,
                         logo: str | None | _Unset = UNSET, site_config: dict[str, Any] | None = None) -> None:
        """Sobrepõe campos imediatamente, sem esperar a rede.

        Não há pilha de desfazer: quem chama guarda o snapshot e reaplica no erro.
        Qualquer busca iniciada antes desta chamada tem o resultado descartado.
        """
        changes: dict[str, Any] = {}
        if categories is not None:
            changes["categories"] = list(categories)
        if products is not None:
            changes["products"] = list(products)
        if logo is not UNSET:
            changes["logo"] = logo
        if site_config is not None:
            changes["site_config"] = dict(site_config)
        if changes:
            self._write_seq += 1
            self._set(**changes)

    def _hydrate_from_cache(self) -> None:
        cached = self.cache.load()
        if cached.empty:
            return
        self._set(categories=cached.categories, products=cached.products, logo=cached.logo)
        log.info("cache_hydrated", categories=len(cached.categories), products=len(cached.products))

    # ---------- gatilhos ----------
    def _spawn_refresh(self) -> None:
        if not self._mounted:
            return
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.s.poll_interval_s)
            self._spawn_refresh()

    def notify_change(self) -> None:
        """Sinal externo de mudança; rajadas viram um único refresh após o silêncio."""
        if not self._mounted:
            return
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = asyncio.get_running_loop().call_later(self.s.debounce_s, self._spawn_refresh)

    def schedule_refresh(self, delay: float | None = None) -> None:
        """Refresh atrasado após escrita, para o backend ficar consistente antes da releitura."""
        if not self._mounted:
            return
        if self._delayed is not None:
            self._delayed.cancel()
        delay = self.s.post_write_refresh_delay_s if delay is None else delay
        self._delayed = asyncio.get_running_loop().call_later(delay, self._spawn_refresh)

    # ---------- refresh ----------
    async def refresh(self) -> bool:
        """Um ciclo completo de busca.

        Retorna False se outro ciclo já estava em andamento; nesse caso o ciclo
        atual roda mais uma vez ao terminar, para não perder a releitura pós-escrita.
        """
        if self._in_flight:
            self._rerun = True
            return False
        self._in_flight = True
        started_seq = self._write_seq
        try:
            if self._mounted and not self._state.loading:
                self._set(loading=True)
            self.remote.invalidate()
            try:
                result = await self._fetch_with_retry()
            except Exception as exc:
                if self._mounted:
                    self._degrade(exc)
                return True
            if not self._mounted:
                log.info("late_result_dropped")
                return True
            if self._write_seq != started_seq:
                log.info("stale_result_dropped", started=started_seq, current=self._write_seq)
                self._rerun = True
                return True
            part = partition_products(result.products)
            categories = sort_categories(result.categories)
            self._set(categories=categories, products=part.visible, logo=part.logo, site_config=part.site_config,
                      loading=False, error=None, last_sync=_now_ms())
            self.cache.save(categories, part.visible, part.logo)
            self.channel.publish(categories, part.visible, part.logo)
            log.info("refresh_ok", categories=len(categories), products=len(part.visible), logo=part.logo is not None)
            return True
        finally:
            self._in_flight = False
            if self._rerun and self._mounted:
                self._rerun = False
                self._spawn_refresh()

    async def _fetch_with_retry(self):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.s.refresh_retries + 1),
            wait=wait_exponential(multiplier=self.s.refresh_retry_base_s),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        ):
            with attempt:
                result = await self.remote.fetch_all(force_refresh=True)
        return result

    def _degrade(self, exc: Exception) -> None:
        """Mantém o último estado bom (memória ou cache local) e expõe o erro."""
        message = exc.message if isinstance(exc, CardapioError) else str(exc)
        changes: dict[str, Any] = {
            "loading": False,
            "error": f"{OFFLINE_PREFIX}: {message}",
            "last_sync": _now_ms(),
        }
        if not self._state.categories and not self._state.products:
            cached = self.cache.load()
            changes.update(categories=cached.categories, products=cached.products, logo=cached.logo)
        self._set(**changes)
        if isinstance(exc, CardapioError):
            log.warning("refresh_failed", error=message, kind=type(exc).__name__)
        else:
            log.error("refresh_crashed", error=message, kind=type(exc).__name__)

    # ---------- outras abas ----------
    def _on_broadcast(self, message: BroadcastMessage) -> None:
        if not self._mounted or message.type != "sync" or message.data is None:
            return
        data = message.data
        changes: dict[str, Any] = {"loading": False, "error": None, "last_sync": message.timestamp}
        if data.categories is not None:
            changes["categories"] = data.categories
        if data.products is not None:
            changes["products"] = data.products
        if data.has("logo"):
            changes["logo"] = data.logo
        self._set(**changes)
        log.info("broadcast_applied", categories=len(data.categories or []), products=len(data.products or []))
