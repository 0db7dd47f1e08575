
"""Repositório: categorias/produtos, sync por diff, logo e configs do site."""
from __future__ import annotations
from datetime import datetime
from typing import Dict, Any, Iterable
from sqlalchemy import select, delete, text, or_
from kink import di
from pydantic import ValidationError
from ..repo.models import CategoryRow, MenuItemRow
from ..ports.interfaces import Category, MenuItem
from ..domain.reserved import LOGO_ID, HIDDEN_CATEGORY_ID, site_config_id, logo_record, classify_id, RecordKind
from ..core.logging import get_logger

log = get_logger("repo")

DEFAULT_ORDER = 999

def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None

def _category_dto(r: CategoryRow) -> Category:
    return Category(id=r.id, name=r.name, order=r.order, icon=r.icon, created_at=_iso(r.created_at))

def _item_dto(r: MenuItemRow, image: str | None = None) -> MenuItem:
    """Normaliza preço, disponibilidade e imagem vindos do banco."""
    return MenuItem(
        id=r.id, name=r.name, description=r.description or "",
        price=float(r.price or 0), category=r.category, image=(r.image or "") if image is None else image,
        available=bool(r.available), order=r.order,
        created_at=_iso(r.created_at), updated_at=_iso(r.updated_at),
    )

def _read_items(rows) -> list[MenuItem]:
    """Leitura tolerante: imagem fora do formato vira vazia; linha irrecuperável é pulada."""
    out = []
    for r in rows:
        try:
            out.append(_item_dto(r))
            continue
        except ValidationError as exc:
            log.warning("row_normalized", id=r.id, error=str(exc.errors()[0]["msg"]))
        try:
            out.append(_item_dto(r, image=""))
        except ValidationError as exc:
            log.warning("row_skipped", id=r.id, error=str(exc.errors()[0]["msg"]))
    return out

def _read_categories(rows) -> list[Category]:
    out = []
    for r in rows:
        if not r.id:
            continue
        try:
            out.append(_category_dto(r))
        except ValidationError as exc:
            log.warning("row_skipped", id=r.id, error=str(exc.errors()[0]["msg"]))
    return out

def _is_preserved(row: MenuItemRow) -> bool:
    return classify_id(row.id, row.category) is not RecordKind.VISIBLE

def get_categories_and_menu_items() -> tuple[list[Category], list[MenuItem]]:
    """Lê categorias e produtos (inclui registros de sistema; o cliente separa)."""
    Session = di["session_factory"]
    with Session() as s:
        cats = s.execute(select(CategoryRow).order_by(CategoryRow.order.asc(), CategoryRow.id)).scalars().all()
        items = s.execute(select(MenuItemRow).order_by(MenuItemRow.order.asc(), MenuItemRow.id)).scalars().all()
        return _read_categories(cats), _read_items(items)

def sync_data(categories: list[Category], products: list[MenuItem]) -> Dict[str, Any]:
    """Substitui o estado por diff numa transação.

    - upsert de tudo que veio;
    - apaga o que faltou, exceto logo, configs e linhas da categoria oculta;
    - lista vazia não apaga nada (evita zerar o cardápio por engano).
    """
    Session = di["session_factory"]
    now = datetime.utcnow()
    deleted_cats = deleted_items = 0
    with Session() as s, s.begin():
        cat_ids = [c.id for c in categories]
        if cat_ids:
            res = s.execute(
                delete(CategoryRow).where(CategoryRow.id.not_in(cat_ids), CategoryRow.id != HIDDEN_CATEGORY_ID)
            )
            deleted_cats = res.rowcount or 0

        item_ids = [p.id for p in products]
        if item_ids:
            stale = s.execute(select(MenuItemRow).where(MenuItemRow.id.not_in(item_ids))).scalars().all()
            for row in stale:
                if _is_preserved(row):
                    continue
                s.delete(row)
                deleted_items += 1

        for c in categories:
            row = s.get(CategoryRow, c.id)
            if row is None:
                row = CategoryRow(id=c.id, created_at=_parse_ts(c.created_at) or now)
                s.add(row)
            row.name = c.name
            row.order = DEFAULT_ORDER if c.order is None else c.order
            row.icon = c.icon

        for p in products:
            row = s.get(MenuItemRow, p.id)
            if row is None:
                row = MenuItemRow(id=p.id, created_at=_parse_ts(p.created_at) or now)
                s.add(row)
            row.name = p.name
            row.description = p.description
            row.price = p.price
            row.category = p.category
            row.image = p.image
            row.available = p.available
            row.order = DEFAULT_ORDER if p.order is None else p.order
            row.updated_at = _parse_ts(p.updated_at) or now
    log.info("sync_data_done", categories=len(categories), products=len(products),
             deleted_categories=deleted_cats, deleted_products=deleted_items)
    return {"success": True, "categoriesCount": len(categories), "menuItemsCount": len(products),
            "deletedCategories": deleted_cats, "deletedMenuItems": deleted_items}

def health_check() -> bool:
    """Verifica se o banco responde."""
    Session = di["session_factory"]
    try:
        with Session() as s:
            s.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        log.error("health_check_failed", error=str(exc))
        return False

# ---------- Logo (registro __site_logo__) ----------
def get_logo() -> str | None:
    Session = di["session_factory"]
    with Session() as s:
        row = s.get(MenuItemRow, LOGO_ID)
        return (row.image or None) if row else None

def save_logo(image: str) -> None:
    """Upsert da logo como item da categoria oculta."""
    rec = logo_record(image)
    Session = di["session_factory"]
    with Session() as s, s.begin():
        row = s.get(MenuItemRow, LOGO_ID)
        if row is None:
            s.add(MenuItemRow(id=rec.id, name=rec.name, description="", price=0, category=HIDDEN_CATEGORY_ID,
                              image=image, available=False, order=DEFAULT_ORDER))
        else:
            row.image = image
            row.updated_at = datetime.utcnow()
    log.info("logo_saved", size_kb=round(len(image) * 3 / 4 / 1024, 1))

def delete_logo() -> None:
    Session = di["session_factory"]
    with Session() as s, s.begin():
        s.execute(delete(MenuItemRow).where(MenuItemRow.id == LOGO_ID))
    log.info("logo_deleted")

# ---------- Configurações do site (registros __site_config_<key>__) ----------
def get_site_config(key: str) -> str | None:
    """Retorna o JSON bruto salvo para a chave (ou None)."""
    Session = di["session_factory"]
    with Session() as s:
        row = s.get(MenuItemRow, site_config_id(key))
        return (row.description or None) if row else None

def save_site_config(key: str, value_json: str) -> None:
    Session = di["session_factory"]
    rid = site_config_id(key)
    with Session() as s, s.begin():
        row = s.get(MenuItemRow, rid)
        if row is None:
            row = MenuItemRow(id=rid, price=0, category=HIDDEN_CATEGORY_ID, image="", available=False, order=DEFAULT_ORDER)
            s.add(row)
        row.name = f"Config: {key}"
        row.description = value_json
        row.updated_at = datetime.utcnow()
    log.info("site_config_saved", key=key)

# ---------- Manutenção ----------
def cleanup_invalid_categories() -> Dict[str, int]:
    """Remove categorias com id vazio/nulo."""
    Session = di["session_factory"]
    with Session() as s, s.begin():
        total = len(s.execute(select(CategoryRow.id)).all())
        res = s.execute(delete(CategoryRow).where(or_(CategoryRow.id.is_(None), CategoryRow.id == "")))
        deleted = res.rowcount or 0
    log.info("cleanup_done", total_checked=total, deleted=deleted)
    return {"totalChecked": total, "deleted": deleted}

def has_data() -> bool:
    Session = di["session_factory"]
    with Session() as s:
        return s.execute(select(CategoryRow.id).limit(1)).first() is not None

def initialize_data(categories: Iterable[Category], products: Iterable[MenuItem]) -> Dict[str, int]:
    """Insere dados iniciais ignorando ids já existentes."""
    Session = di["session_factory"]
    n_cats = n_items = 0
    with Session() as s, s.begin():
        for c in categories:
            if s.get(CategoryRow, c.id) is None:
                s.add(CategoryRow(id=c.id, name=c.name, order=DEFAULT_ORDER if c.order is None else c.order, icon=c.icon))
                n_cats += 1
        for p in products:
            if s.get(MenuItemRow, p.id) is None:
                s.add(MenuItemRow(id=p.id, name=p.name, description=p.description, price=p.price, category=p.category,
                                  image=p.image, available=p.available, order=DEFAULT_ORDER if p.order is None else p.order))
                n_items += 1
    log.info("initialize_data_done", categories=n_cats, products=n_items)
    return {"categoriesCount": n_cats, "menuItemsCount": n_items}
