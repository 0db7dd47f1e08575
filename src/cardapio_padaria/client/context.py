
"""Ações do painel admin sobre o cardápio (CRUD com atualização otimista).

Fluxo de cada escrita:
1. snapshot do estado atual
2. novo array desejado (inserir, substituir ou filtrar)
3. apply_optimistic
4. push do estado completo (o backend aplica por diff)
5. sucesso: refresh atrasado + toast; falha: restaura o snapshot, toast de erro e relança
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal
from uuid import uuid4
import httpx
from pydantic import BaseModel
from ..core.di import bootstrap_client_di
from ..core.settings import ClientSettings
from ..core.errors import CardapioError, CategoryInUseError, PayloadInvalidError, RecordNotFoundError, ReservedRecordError
from ..core.guardrails import sanitize_category, sanitize_product, ensure_unique_name
from ..core.logging import get_logger
from ..domain.reserved import RecordKind, classify, classify_id, ensure_logo, is_reserved_category
from ..domain.services.menu_service import products_in_use
from ..ports.interfaces import Category, MenuItem
from .broadcast import BroadcastChannel, BroadcastHub, MessageBus
from .local_cache import LocalCache
from .remote_store import RemoteStoreClient
from .synced_data import SyncedData, SyncedState

log = get_logger("context")

# lista vazia no push não apaga nada no servidor
LAST_RECORD_MESSAGE = "Não é possível excluir o(a) último(a) {kind} do cardápio. Adicione outro(a) antes de excluir."

class Toast(BaseModel):
    kind: Literal["success", "error", "info"]
    message: str

def ensure_category_deletable(category_id: str, products: list[MenuItem]) -> None:
    """Recusa excluir categoria ainda referenciada por produtos."""
    in_use = products_in_use(category_id, products)
    if in_use:
        raise CategoryInUseError(category_id, in_use)

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def _find(items: list, record_id: str, label: str):
    for it in items:
        if it.id == record_id:
            return it
    raise RecordNotFoundError(f"{label} não encontrado(a): {record_id}")

class CardapioContext:
    """Fachada de ações usada pela UI. Toasts saem pelo barramento `toasts`."""
    def __init__(self, synced: SyncedData, remote: RemoteStoreClient | None = None,
                 toasts: MessageBus[Toast] | None = None):
        self.synced = synced
        self.remote = remote or synced.remote
        self.toasts: MessageBus[Toast] = toasts or MessageBus("toasts")

    async def aclose(self) -> None:
        """Desmonta o estado e fecha o cliente HTTP (quando ele é dono da conexão)."""
        await self.synced.aclose()
        await self.remote.aclose()

    async def __aenter__(self) -> "CardapioContext":
        await self.synced.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    @property
    def state(self) -> SyncedState:
        return self.synced.snapshot()

    def _toast(self, kind: str, message: str) -> None:
        self.toasts.publish(Toast(kind=kind, message=message))

    async def _commit(self, action: str, push: Callable[[], Awaitable[None]], success: str, **optimistic: Any) -> None:
        before = self.synced.snapshot()
        self.synced.apply_optimistic(**optimistic)
        try:
            await push()
        except Exception as exc:
            self.synced.apply_optimistic(categories=before.categories, products=before.products,
                                         logo=before.logo, site_config=before.site_config)
            message = exc.message if isinstance(exc, CardapioError) else str(exc)
            log.warning("action_rolled_back", action=action, error=message)
            self._toast("error", f"Erro ao salvar: {message}")
            raise
        self.synced.schedule_refresh()
        log.info("action_ok", action=action)
        self._toast("success", success)

    async def _push_state(self, action: str, success: str, categories: list[Category], products: list[MenuItem]) -> None:
        """Push do estado completo; a logo em memória é reanexada se faltar."""
        logo = self.synced.snapshot().logo

        async def push() -> None:
            await self.remote.push_all(ensure_logo(products, logo), categories)
        await self._commit(action, push, success, categories=categories, products=products)

    # ---------- produtos ----------
    async def add_product(self, data: dict | MenuItem) -> MenuItem:
        raw = data.model_dump() if isinstance(data, MenuItem) else dict(data)
        raw["id"] = raw.get("id") or uuid4().hex
        raw.setdefault("created_at", _now_iso())
        product = sanitize_product(raw)
        if classify(product) is not RecordKind.VISIBLE:
            raise ReservedRecordError(f"Id ou categoria reservados: {product.id}")
        state = self.state
        if any(p.id == product.id for p in state.products):
            raise PayloadInvalidError(f"Produto já existe: {product.id}")
        await self._push_state("add_product", "Produto adicionado!", state.categories, [*state.products, product])
        return product

    async def update_product(self, product_id: str, changes: dict) -> MenuItem:
        if classify_id(product_id) is not RecordKind.VISIBLE:
            raise ReservedRecordError(f"Registro de sistema não pode ser editado como produto: {product_id}")
        state = self.state
        current = _find(state.products, product_id, "Produto")
        product = sanitize_product({**current.model_dump(), **changes, "id": product_id})
        if classify(product) is not RecordKind.VISIBLE:
            raise ReservedRecordError(f"Categoria reservada: {product.category}")
        products = [product if p.id == product_id else p for p in state.products]
        await self._push_state("update_product", "Produto atualizado!", state.categories, products)
        return product

    async def delete_product(self, product_id: str) -> None:
        if classify_id(product_id) is not RecordKind.VISIBLE:
            raise ReservedRecordError(f"Registro de sistema não pode ser excluído como produto: {product_id}")
        state = self.state
        _find(state.products, product_id, "Produto")
        products = [p for p in state.products if p.id != product_id]
        if not products and not state.logo:
            raise PayloadInvalidError(LAST_RECORD_MESSAGE.format(kind="produto"))
        await self._push_state("delete_product", "Produto excluído!", state.categories, products)

    # ---------- categorias ----------
    async def add_category(self, data: dict | Category) -> Category:
        state = self.state
        raw = data.model_dump(exclude_unset=True) if isinstance(data, Category) else dict(data)
        raw["id"] = raw.get("id") or uuid4().hex
        if raw.get("order") is None:
            raw["order"] = len(state.categories)
        raw.setdefault("created_at", _now_iso())
        category = sanitize_category(raw)
        if is_reserved_category(category.id):
            raise ReservedRecordError(f"Id de categoria reservado: {category.id}")
        if any(c.id == category.id for c in state.categories):
            raise PayloadInvalidError(f"Categoria já existe: {category.id}")
        ensure_unique_name(category.name, state.categories)
        await self._push_state("add_category", "Categoria adicionada!", [*state.categories, category], state.products)
        return category

    async def update_category(self, category_id: str, changes: dict) -> Category:
        if is_reserved_category(category_id):
            raise ReservedRecordError(f"Id de categoria reservado: {category_id}")
        state = self.state
        current = _find(state.categories, category_id, "Categoria")
        category = sanitize_category({**current.model_dump(), **changes, "id": category_id})
        ensure_unique_name(category.name, state.categories, exclude_id=category_id)
        categories = [category if c.id == category_id else c for c in state.categories]
        await self._push_state("update_category", "Categoria atualizada!", categories, state.products)
        return category

    async def delete_category(self, category_id: str) -> None:
        """Exclui categoria sem produtos; a checagem acontece antes de qualquer requisição."""
        state = self.state
        _find(state.categories, category_id, "Categoria")
        ensure_category_deletable(category_id, state.products)
        categories = [c for c in state.categories if c.id != category_id]
        if not categories:
            raise PayloadInvalidError(LAST_RECORD_MESSAGE.format(kind="categoria"))
        await self._push_state("delete_category", "Categoria excluída!", categories, state.products)

    async def reorder_categories(self, ordered_ids: list[str]) -> list[Category]:
        """Reatribui `order` pela posição; categorias não listadas vão depois, na ordem atual."""
        state = self.state
        by_id = {c.id: c for c in state.categories}
        for cid in ordered_ids:
            if cid not in by_id:
                raise RecordNotFoundError(f"Categoria não encontrada: {cid}")
        rest = [c.id for c in state.categories if c.id not in ordered_ids]
        categories = [by_id[cid].model_copy(update={"order": idx}) for idx, cid in enumerate([*ordered_ids, *rest])]
        await self._push_state("reorder_categories", "Ordem das categorias salva!", categories, state.products)
        return categories

    # ---------- estado completo, logo e configs ----------
    async def sync_to_cloud(self) -> None:
        """Reenvia o estado atual inteiro (ex: após ficar offline)."""
        state = self.state
        await self._push_state("sync_to_cloud", "Dados sincronizados com a nuvem!", state.categories, state.products)

    async def set_logo(self, image: str | None) -> None:
        """Troca ou remove a logo (None remove no servidor)."""
        async def push() -> None:
            await self.remote.save_logo(image)
        await self._commit("set_logo", push, "Logo salva!" if image else "Logo removida!", logo=image)

    async def save_site_config(self, key: str, value: Any) -> None:
        config = {**self.state.site_config, key: value}

        async def push() -> None:
            await self.remote.save_site_config(key, value)
        await self._commit("save_site_config", push, "Configuração salva!", site_config=config)

    async def refresh(self) -> bool:
        return await self.synced.refresh()


def build_context(settings: ClientSettings | None = None, hub: BroadcastHub | None = None,
                  http: httpx.AsyncClient | None = None) -> CardapioContext:
    """Monta a pilha do cliente de uma aba (remote, cache local, canal, estado e ações).

    Use `async with build_context(...) as ctx` para montar e fechar a conexão no fim.
    """
    settings = bootstrap_client_di(settings)
    remote = RemoteStoreClient(http=http)
    synced = SyncedData(remote, LocalCache(), BroadcastChannel(settings.broadcast_channel, hub))
    return CardapioContext(synced, remote)
