
"""Carregador do cardápio inicial (seed JSON) usado por POST /api/init.

- Fonte: config/seed_menu.json (ou CARDAPIO_SEED_PATH)
- Formato: {"categories": [...], "products": [...]} no mesmo schema do /api/sync
"""
from __future__ import annotations
from typing import Any, Dict
import json
from .guardrails import validate_list
from .errors import PayloadInvalidError
from ..ports.interfaces import Category, MenuItem, SyncPayload
from .logging import get_logger

log = get_logger("catalog")

def load_seed(path: str) -> SyncPayload:
    """Carrega o seed do disco. Arquivo ausente ou corrompido vira cardápio vazio."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = json.load(f)
    except (OSError, ValueError) as exc:
        log.warning("seed_unavailable", path=path, error=str(exc))
        return SyncPayload()
    try:
        return SyncPayload(
            categories=validate_list(Category, raw.get("categories", []), "categories"),
            products=validate_list(MenuItem, raw.get("products", []), "products"),
        )
    except PayloadInvalidError as exc:
        log.warning("seed_invalid", path=path, error=exc.message)
        return SyncPayload()
