
"""Cliente HTTP do backend de sincronização (httpx assíncrono + retry tenacity).

Só `TransientError` (rede, timeout, 5xx, 408, 429) é repetido. Validação (400),
autorização (401) e respostas fora do formato sobem na primeira tentativa.
"""
from __future__ import annotations
import asyncio, time
from datetime import datetime, timezone
from typing import Any
import httpx
from kink import di
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, retry_if_exception_type
from ..core.settings import ClientSettings
from ..core.errors import TransientError, PayloadInvalidError, ResponseShapeError, AuthError, CardapioError
from ..core.guardrails import sanitize_category, sanitize_product
from ..core.logging import get_logger
from ..ports.interfaces import Category, MenuItem, SyncPayload, SyncResult, AuthUser

log = get_logger("remote_store")

TRANSIENT_STATUS = {408, 429}

def _error_body(resp: httpx.Response) -> tuple[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}", None
    if isinstance(body, dict):
        return str(body.get("error") or f"HTTP {resp.status_code}"), body.get("details")
    return f"HTTP {resp.status_code}", None

def raise_for_status(resp: httpx.Response) -> httpx.Response:
    """Traduz o status HTTP para a taxonomia de erros."""
    if resp.is_success:
        return resp
    message, details = _error_body(resp)
    status = resp.status_code
    if status >= 500 or status in TRANSIENT_STATUS:
        raise TransientError(f"Erro do servidor ({status}): {message}", details)
    if status == 401:
        raise AuthError(message, details)
    raise PayloadInvalidError(message, details)

def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise ResponseShapeError("Resposta do servidor não é JSON") from exc

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

class RemoteStoreClient:
    """Acesso ao backend: leitura/escrita do estado completo, logo, configs e sessão admin.

    A leitura passa por um cache em memória com TTL curto; `push_all` e
    `invalidate()` o descartam.
    """
    def __init__(self, settings: ClientSettings | None = None, http: httpx.AsyncClient | None = None):
        self.s = settings or di[ClientSettings]
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=self.s.base_url)
        self._cached: SyncResult | None = None
        self._cached_at = 0.0

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ---------- infra ----------
    async def _send(self, method: str, url: str, timeout: float | None = None, **kwargs) -> httpx.Response:
        """Uma tentativa, com timeout que cancela a requisição."""
        timeout = timeout or self.s.timeout_s
        try:
            resp = await asyncio.wait_for(self._http.request(method, url, **kwargs), timeout)
        except asyncio.TimeoutError as exc:
            raise TransientError(f"Tempo esgotado após {timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"Falha de rede: {exc}") from exc
        return raise_for_status(resp)

    def _retrying(self, op: str) -> AsyncRetrying:
        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            log.warning("remote_retry", op=op, attempt=state.attempt_number,
                        error=exc.message if isinstance(exc, CardapioError) else repr(exc))
        return AsyncRetrying(
            stop=stop_after_attempt(self.s.max_retries + 1),
            wait=wait_exponential(multiplier=self.s.initial_retry_delay_s),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def _send_with_retry(self, op: str, method: str, url: str, timeout: float | None = None, **kwargs) -> httpx.Response:
        async for attempt in self._retrying(op):
            with attempt:
                resp = await self._send(method, url, timeout, **kwargs)
        return resp

    # ---------- sync ----------
    def invalidate(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    async def fetch_all(self, force_refresh: bool = False) -> SyncResult:
        """GET do estado completo. Usa o cache de leitura se fresco e `force_refresh` for falso."""
        if not force_refresh and self._cached is not None and time.monotonic() - self._cached_at < self.s.read_cache_ttl_s:
            return self._cached.model_copy(update={"from_cache": True}, deep=True)
        resp = await self._send_with_retry("fetch_all", "GET", self.s.sync_endpoint)
        data = _json(resp)
        if not isinstance(data, dict) or not isinstance(data.get("categories"), list) or not isinstance(data.get("products"), list):
            raise ResponseShapeError("Resposta inválida do servidor: esperado {categories, products}")
        result = SyncResult(
            categories=self._parse(Category, [c for c in data["categories"] if isinstance(c, dict) and isinstance(c.get("id"), str) and c["id"]]),
            products=self._parse(MenuItem, data["products"]),
            timestamp=time.time() * 1000,
        )
        self._cached, self._cached_at = result, time.monotonic()
        log.info("fetch_ok", categories=len(result.categories), products=len(result.products))
        return result.model_copy(deep=True)

    @staticmethod
    def _parse(model, items: list) -> list:
        out = []
        for item in items:
            try:
                out.append(model.model_validate(item))
            except ValidationError as exc:
                log.warning("record_skipped", model=model.__name__, id=item.get("id") if isinstance(item, dict) else None,
                            error=str(exc.errors()[0]["msg"]))
        return out

    async def push_all(self, products: list[MenuItem], categories: list[Category]) -> None:
        """POST do estado completo desejado (o servidor aplica por diff)."""
        stamp = _now_iso()
        payload = SyncPayload(
            categories=[sanitize_category(c) for c in categories],
            products=[sanitize_product(p).model_copy(update={"updated_at": stamp}) for p in products],
        )
        resp = await self._send_with_retry("push_all", "POST", self.s.sync_endpoint, timeout=self.s.push_timeout_s,
                                           json=payload.model_dump(mode="json"))
        self.invalidate()
        body = _json(resp)
        log.info("push_ok", categories=len(payload.categories), products=len(payload.products),
                 sync=body.get("sync") if isinstance(body, dict) else None)

    # ---------- logo e configs ----------
    async def get_logo(self) -> str | None:
        data = _json(await self._send_with_retry("get_logo", "GET", "/api/logo"))
        return data.get("logo") if isinstance(data, dict) else None

    async def save_logo(self, logo: str | None) -> None:
        """Salva a logo; None remove."""
        await self._send_with_retry("save_logo", "POST", "/api/logo", timeout=self.s.push_timeout_s, json={"logo": logo})
        self.invalidate()

    async def get_site_config(self, key: str) -> Any:
        data = _json(await self._send_with_retry("get_site_config", "GET", "/api/site-config", params={"key": key}))
        return data.get("value") if isinstance(data, dict) else None

    async def save_site_config(self, key: str, value: Any) -> None:
        await self._send_with_retry("save_site_config", "POST", "/api/site-config", json={"key": key, "value": value})
        self.invalidate()

    # ---------- sessão admin (sem retry: 429 no login não deve ser martelado) ----------
    async def login(self, password: str) -> AuthUser:
        data = _json(await self._send("POST", "/api/auth/login", json={"password": password}))
        if not isinstance(data, dict) or not isinstance(data.get("user"), dict):
            raise ResponseShapeError("Resposta de login sem usuário")
        log.info("login_ok")
        return AuthUser.model_validate(data["user"])

    async def logout(self) -> None:
        await self._send("POST", "/api/auth/logout")

    async def me(self) -> AuthUser | None:
        """Usuário da sessão atual; None se não autenticado."""
        try:
            data = _json(await self._send("GET", "/api/auth/me"))
        except AuthError:
            return None
        user = data.get("user") if isinstance(data, dict) else None
        return AuthUser.model_validate(user) if user else None

    async def health(self) -> bool:
        try:
            await self._send("GET", "/healthz")
        except CardapioError:
            return False
        return True
