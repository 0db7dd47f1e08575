
"""Registros de sistema guardados na mesma tabela dos produtos.

A logo e as configurações do site (ex: horários) são linhas de `menu_items`
com ids reservados e categoria oculta. Este módulo é o único que conhece as
strings do protocolo; o resto do código pergunta o `RecordKind`.
"""
from __future__ import annotations
import json
from enum import Enum
from typing import Any, Iterable, NamedTuple
from ..ports.interfaces import MenuItem

LOGO_ID = "__site_logo__"
HIDDEN_CATEGORY_ID = "__hidden__"
_CONFIG_PREFIX = "__site_config_"
_CONFIG_SUFFIX = "__"

class RecordKind(str, Enum):
    VISIBLE = "visible"
    LOGO = "logo"
    SITE_CONFIG = "site_config"
    HIDDEN = "hidden"

def site_config_id(key: str) -> str:
    return f"{_CONFIG_PREFIX}{key}{_CONFIG_SUFFIX}"

def site_config_key(record_id: str) -> str | None:
    """Extrai a chave de um id de config; None se não for config."""
    if record_id.startswith(_CONFIG_PREFIX) and record_id.endswith(_CONFIG_SUFFIX):
        key = record_id[len(_CONFIG_PREFIX):-len(_CONFIG_SUFFIX)]
        return key or None
    return None

def classify_id(record_id: str, category: str | None = None) -> RecordKind:
    if record_id == LOGO_ID:
        return RecordKind.LOGO
    if site_config_key(record_id) is not None:
        return RecordKind.SITE_CONFIG
    if category == HIDDEN_CATEGORY_ID:
        return RecordKind.HIDDEN
    return RecordKind.VISIBLE

def classify(item: MenuItem) -> RecordKind:
    return classify_id(item.id, item.category)

def is_system(item: MenuItem) -> bool:
    return classify(item) is not RecordKind.VISIBLE

def is_reserved_category(category_id: str) -> bool:
    return category_id == HIDDEN_CATEGORY_ID

def logo_record(image: str) -> MenuItem:
    """Monta o registro-produto que representa a logo."""
    return MenuItem(id=LOGO_ID, name="Logo", description="", price=0, category=HIDDEN_CATEGORY_ID,
                    image=image, available=False, order=999)

def site_config_record(key: str, value: Any) -> MenuItem:
    """Config do site serializada em JSON no campo description."""
    return MenuItem(id=site_config_id(key), name=f"Config: {key}", description=json.dumps(value, ensure_ascii=False),
                    price=0, category=HIDDEN_CATEGORY_ID, image="", available=False, order=999)

def decode_site_config(item: MenuItem) -> Any:
    try:
        return json.loads(item.description) if item.description else None
    except ValueError:
        return None

class Partition(NamedTuple):
    visible: list[MenuItem]
    logo: str | None
    site_config: dict[str, Any]

def partition_products(products: Iterable[MenuItem]) -> Partition:
    """Separa produtos visíveis dos registros de sistema (logo e configs).

    Linhas ocultas sem tipo conhecido são descartadas da vista do cliente,
    mas continuam no servidor (o sync nunca as apaga).
    """
    visible: list[MenuItem] = []
    logo: str | None = None
    config: dict[str, Any] = {}
    for p in products:
        kind = classify(p)
        if kind is RecordKind.VISIBLE:
            visible.append(p)
        elif kind is RecordKind.LOGO:
            logo = p.image or None
        elif kind is RecordKind.SITE_CONFIG:
            config[site_config_key(p.id)] = decode_site_config(p)
    return Partition(visible, logo, config)

def ensure_logo(products: list[MenuItem], logo: str | None) -> list[MenuItem]:
    """Reanexa a logo se ela existe em memória mas falta no array a enviar.

    Sem isso um sync rotineiro de produtos apagaria a logo no servidor.
    """
    if not logo or any(p.id == LOGO_ID for p in products):
        return list(products)
    return [*products, logo_record(logo)]
