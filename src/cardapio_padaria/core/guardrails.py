
"""Guardrails: sanitização e validação de payloads antes de gravar ou enviar."""
from __future__ import annotations
import re
from typing import Any, Iterable, TypeVar
from pydantic import BaseModel, ValidationError
from ..ports.interfaces import Category, MenuItem, SyncPayload
from .errors import PayloadInvalidError, DuplicateCategoryError

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
IMAGE_TOLERANCE = 0.05

M = TypeVar("M", bound=BaseModel)

def sanitize_text(text: str) -> str:
    """Normaliza espaços e remove caracteres de controle."""
    text = CONTROL_CHARS.sub("", text or "")
    return " ".join(text.split())

def _coerce_order(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        return 0

def sanitize_category(raw: Any) -> Category:
    """Limpa nome/id e garante `order` numérico antes do envio."""
    if not isinstance(raw, (dict, Category)):
        raise PayloadInvalidError("Categoria inválida")
    data = raw.model_dump() if isinstance(raw, Category) else dict(raw)
    data["id"] = str(data.get("id") or "").strip()
    data["name"] = sanitize_text(str(data.get("name") or ""))
    order = _coerce_order(data.get("order"))
    data["order"] = 0 if order is None else order
    return _validate(Category, data, "categoria")

def sanitize_product(raw: Any) -> MenuItem:
    if not isinstance(raw, (dict, MenuItem)):
        raise PayloadInvalidError("Produto inválido")
    data = raw.model_dump() if isinstance(raw, MenuItem) else dict(raw)
    data["id"] = str(data.get("id") or "").strip()
    data["name"] = sanitize_text(str(data.get("name") or ""))
    data["category"] = str(data.get("category") or "").strip()
    data["available"] = data.get("available") is True or data.get("available") == 1
    return _validate(MenuItem, data, "produto")

def _validate(model: type[M], data: Any, label: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        msgs = ", ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
        raise PayloadInvalidError(f"Erro ao validar {label}: {msgs}") from exc

def validate_list(model: type[M], items: Any, field: str) -> list[M]:
    """Valida lista de registros; erro aponta o índice do primeiro inválido."""
    if not isinstance(items, list):
        raise PayloadInvalidError(f"{field} deve ser um array")
    out: list[M] = []
    for idx, item in enumerate(items):
        try:
            out.append(model.model_validate(item))
        except ValidationError as exc:
            msgs = ", ".join(e["msg"] for e in exc.errors())
            raise PayloadInvalidError(f"Erro ao validar {field}[{idx}]: {msgs}") from exc
    return out

def base64_size_bytes(data: str) -> int:
    """Tamanho exato do conteúdo base64 (com ou sem prefixo data URI)."""
    clean = data.split(",", 1)[1] if "," in data else data
    padding = 2 if clean.endswith("==") else 1 if clean.endswith("=") else 0
    return max(len(clean) * 3 // 4 - padding, 0)

def check_inline_image(image: str, max_kb: int) -> str | None:
    """Retorna mensagem de erro se a imagem inline exceder o limite (+5%)."""
    if not image.startswith("data:"):
        return None
    size_kb = base64_size_bytes(image) / 1024
    if size_kb > max_kb * (1 + IMAGE_TOLERANCE):
        return f"Imagem: {size_kb:.0f}KB, máximo: {max_kb}KB. Tente reduzir qualidade ou dimensão."
    return None

def duplicate_names(categories: Iterable[Category]) -> list[str]:
    seen: set[str] = set()
    dups: list[str] = []
    for c in categories:
        key = c.name.lower()
        if key in seen and key not in dups:
            dups.append(key)
        seen.add(key)
    return dups

def ensure_unique_name(name: str, categories: Iterable[Category], exclude_id: str | None = None) -> None:
    """Nome de categoria único (case-insensitive) entre as demais."""
    key = name.strip().lower()
    for c in categories:
        if c.id != exclude_id and c.name.lower() == key:
            raise DuplicateCategoryError(name)

def dedupe_by_id(items: Iterable[M]) -> list[M]:
    """Remove ids repetidos; a última ocorrência vence, na posição da primeira."""
    by_id: dict[str, M] = {}
    for it in items:
        by_id[it.id] = it
    return list(by_id.values())

def validate_sync_payload(body: Any, max_image_kb: int) -> SyncPayload:
    """Valida corpo do POST /api/sync.

    Ordem: tipos → imagens inline → registros (dedupe por id) → nomes duplicados.
    """
    if not isinstance(body, dict):
        raise PayloadInvalidError("Corpo da requisição inválido")
    categories = body.get("categories", [])
    products = body.get("products", [])
    if not isinstance(categories, list) or not isinstance(products, list):
        raise PayloadInvalidError("Categories e products devem ser arrays")

    image_errors = []
    for p in products:
        if isinstance(p, dict) and isinstance(p.get("image"), str):
            msg = check_inline_image(p["image"], max_image_kb)
            if msg:
                image_errors.append(f"\"{p.get('name') or p.get('id')}\": {msg}")
    if image_errors:
        raise PayloadInvalidError("Uma ou mais imagens excedem o tamanho máximo permitido", details=image_errors)

    valid_cats = [c for c in categories if isinstance(c, dict) and isinstance(c.get("id"), str) and c.get("id")]
    cats = dedupe_by_id(validate_list(Category, valid_cats, "categories"))
    dups = duplicate_names(cats)
    if dups:
        raise PayloadInvalidError("Nomes de categorias duplicados", details=dups)
    prods = validate_list(MenuItem, products, "products")
    return SyncPayload(categories=cats, products=dedupe_by_id(prods))
