"""Serviço de cardápio: ordenação, rótulos e vista pública."""
from typing import List, Dict, Iterable
from ...ports.interfaces import Category, MenuItem
from ..reserved import is_reserved_category, is_system

MISSING_ORDER = 999_999
ORPHAN_LABEL = "N/A"

def sort_categories(categories: Iterable[Category]) -> List[Category]:
    """Ordena por `order` crescente; order ausente/nulo vai para o fim (estável)."""
    return sorted(categories, key=lambda c: MISSING_ORDER if c.order is None else c.order)

def visible_categories(categories: Iterable[Category]) -> List[Category]:
    return [c for c in sort_categories(categories) if not is_reserved_category(c.id)]

def category_label(product: MenuItem, categories: Iterable[Category]) -> str:
    """Nome da categoria do produto; referência órfã vira "N/A"."""
    for c in categories:
        if c.id == product.category:
            return c.name
    return ORPHAN_LABEL

def products_in_use(category_id: str, products: Iterable[MenuItem]) -> List[str]:
    """Ids dos produtos que ainda referenciam a categoria."""
    return [p.id for p in products if p.category == category_id]

def format_price(price: float) -> str:
    """Formata em reais no padrão brasileiro (R$ 1.234,50)."""
    txt = f"{price:,.2f}"
    return "R$ " + txt.replace(",", "X").replace(".", ",").replace("X", ".")

def public_menu(categories: Iterable[Category], products: Iterable[MenuItem]) -> List[Dict]:
    """Agrupa produtos disponíveis por categoria visível (ordem preservada).

    Produtos com categoria inexistente aparecem num grupo final "N/A".
    """
    cats = visible_categories(categories)
    known = {c.id for c in cats}
    items = [p for p in products if p.available and not is_system(p)]
    groups: List[Dict] = []
    for c in cats:
        group = [p for p in items if p.category == c.id]
        if group:
            groups.append({"id": c.id, "name": c.name, "items": [_public_item(p) for p in group]})
    orphans = [p for p in items if p.category not in known]
    if orphans:
        groups.append({"id": None, "name": ORPHAN_LABEL, "items": [_public_item(p) for p in orphans]})
    return groups

def _public_item(p: MenuItem) -> Dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "price_label": format_price(p.price),
        "image": p.image or None,
    }
