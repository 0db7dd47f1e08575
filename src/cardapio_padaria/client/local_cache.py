
"""Cache local durável (arquivos JSON), usado só como fallback offline.

Melhor esforço: nenhuma operação levanta. Chave corrompida é apagada e volta
ao valor vazio.
"""
from __future__ import annotations
import json, os
from pathlib import Path
from typing import Any
from kink import di
from pydantic import BaseModel
from ..core.settings import ClientSettings
from ..core.errors import PayloadInvalidError
from ..core.guardrails import validate_list
from ..core.logging import get_logger
from ..ports.interfaces import Category, MenuItem

log = get_logger("local_cache")

CATEGORIES_KEY = "cardapio-categories"
PRODUCTS_KEY = "cardapio-products"
LOGO_KEY = "cardapio-logo"

class CachedSnapshot(BaseModel):
    categories: list[Category] = []
    products: list[MenuItem] = []
    logo: str | None = None

    @property
    def empty(self) -> bool:
        return not self.categories and not self.products and not self.logo

class LocalCache:
    def __init__(self, cache_dir: str | os.PathLike | None = None, settings: ClientSettings | None = None):
        if cache_dir is None:
            cache_dir = (settings or di[ClientSettings]).cache_dir
        self.dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        return self.dir / f"{key}.json"

    def _write(self, key: str, value: Any) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    def _remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            log.debug("local_cache_remove_failed", key=key, error=str(exc))

    def save(self, categories: list[Category], products: list[MenuItem], logo: str | None) -> None:
        """Grava as três chaves; logo None remove a chave da logo."""
        try:
            self._write(CATEGORIES_KEY, [c.model_dump(mode="json") for c in categories])
            self._write(PRODUCTS_KEY, [p.model_dump(mode="json") for p in products])
            if logo:
                self._write(LOGO_KEY, logo)
            else:
                self._remove(LOGO_KEY)
        except (OSError, TypeError, ValueError) as exc:
            log.debug("local_cache_save_failed", dir=str(self.dir), error=str(exc))

    def _read(self, key: str) -> Any:
        """Conteúdo decodificado; None se ausente, ilegível ou corrompido (este é apagado)."""
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            log.debug("local_cache_read_failed", key=key, error=str(exc))
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.debug("local_cache_corrupted", key=key)
            self._remove(key)
            return None

    def _load_list(self, key: str, model: type) -> list:
        raw = self._read(key)
        if raw is None:
            return []
        try:
            return validate_list(model, raw, key)
        except PayloadInvalidError as exc:
            log.debug("local_cache_invalid", key=key, error=exc.message)
            self._remove(key)
            return []

    def load(self) -> CachedSnapshot:
        logo = self._read(LOGO_KEY)
        if logo is not None and not isinstance(logo, str):
            self._remove(LOGO_KEY)
            logo = None
        return CachedSnapshot(
            categories=self._load_list(CATEGORIES_KEY, Category),
            products=self._load_list(PRODUCTS_KEY, MenuItem),
            logo=logo or None,
        )

    def clear(self) -> None:
        for key in (CATEGORIES_KEY, PRODUCTS_KEY, LOGO_KEY):
            self._remove(key)
