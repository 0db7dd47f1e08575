from cardapio_padaria.domain.reserved import (
    LOGO_ID, HIDDEN_CATEGORY_ID, RecordKind, classify, classify_id, site_config_id, site_config_key,
    logo_record, site_config_record, partition_products, ensure_logo, is_system,
)
from conftest import make_product


def test_classify_kinds():
    assert classify(logo_record("data:image/png;base64,AAAA")) is RecordKind.LOGO
    assert classify(site_config_record("horarios", {"seg": "7h-19h"})) is RecordKind.SITE_CONFIG
    assert classify(make_product("rascunho", HIDDEN_CATEGORY_ID)) is RecordKind.HIDDEN
    assert classify(make_product("sonho", "doces")) is RecordKind.VISIBLE


def test_site_config_id_round_trip():
    assert site_config_key(site_config_id("horarios")) == "horarios"
    assert site_config_key("sonho") is None
    assert classify_id("__site_config___") is RecordKind.VISIBLE


def test_partition_separates_system_records():
    horarios = {"seg-sex": "6h às 20h", "sab": "6h às 14h"}
    products = [
        make_product("sonho", "doces"),
        logo_record("https://cdn.exemplo.com/logo.png"),
        site_config_record("horarios", horarios),
        make_product("rascunho", HIDDEN_CATEGORY_ID),
    ]
    part = partition_products(products)
    assert [p.id for p in part.visible] == ["sonho"]
    assert part.logo == "https://cdn.exemplo.com/logo.png"
    assert part.site_config == {"horarios": horarios}


def test_ensure_logo_appends_only_when_missing():
    products = [make_product("sonho", "doces")]
    with_logo = ensure_logo(products, "data:image/png;base64,AAAA")
    assert [p.id for p in with_logo] == ["sonho", LOGO_ID]
    assert is_system(with_logo[-1])
    assert ensure_logo(with_logo, "data:image/png;base64,BBBB") == with_logo
    assert ensure_logo(products, None) == products
