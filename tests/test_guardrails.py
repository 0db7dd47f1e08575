import base64
import pytest
from cardapio_padaria.core.errors import PayloadInvalidError, DuplicateCategoryError
from cardapio_padaria.core.guardrails import (
    sanitize_text, sanitize_category, sanitize_product, base64_size_bytes, check_inline_image,
    ensure_unique_name, dedupe_by_id, validate_sync_payload,
)
from conftest import make_category


def _data_uri(n_bytes: int) -> str:
    return "data:image/png;base64," + base64.b64encode(b"\x00" * n_bytes).decode()


def test_sanitize_text_strips_controls_and_spaces():
    assert sanitize_text("  Pão\x00   de\tQueijo \n") == "Pão de Queijo"


def test_sanitize_category_coerces_order():
    assert sanitize_category({"id": " paes ", "name": "Pães", "order": "3"}).order == 3
    assert sanitize_category({"id": "paes", "name": "Pães", "order": None}).order == 0
    with pytest.raises(PayloadInvalidError):
        sanitize_category({"id": "", "name": "Sem id"})


def test_sanitize_product_coerces_price_and_available():
    p = sanitize_product({"id": "p1", "name": " Sonho ", "price": "7.5", "category": "doces", "available": 1,
                          "description": None, "image": None})
    assert (p.name, p.price, p.available, p.description, p.image) == ("Sonho", 7.5, True, "", "")
    with pytest.raises(PayloadInvalidError):
        sanitize_product({"id": "p2", "name": "X", "price": -1, "category": "doces"})
    with pytest.raises(PayloadInvalidError):
        sanitize_product({"id": "p3", "name": "X", "price": 1, "category": "doces", "image": "ftp://x"})


def test_base64_size_exact():
    assert base64_size_bytes(_data_uri(1000)) == 1000
    assert base64_size_bytes(base64.b64encode(b"ab").decode()) == 2


def test_inline_image_limit_has_tolerance():
    assert check_inline_image(_data_uri(1024), max_kb=1) is None
    assert check_inline_image(_data_uri(1024 + 40), max_kb=1) is None
    assert check_inline_image(_data_uri(2048), max_kb=1) is not None
    assert check_inline_image("https://cdn.exemplo.com/grande.png", max_kb=1) is None


def test_unique_name_case_insensitive():
    cats = [make_category("paes", "Pães")]
    with pytest.raises(DuplicateCategoryError):
        ensure_unique_name(" PÃES ", cats)
    ensure_unique_name("Pães", cats, exclude_id="paes")


def test_dedupe_last_wins():
    a1, b, a2 = make_category("a", "A1"), make_category("b"), make_category("a", "A2")
    assert [c.name for c in dedupe_by_id([a1, b, a2])] == ["A2", "B"]


def test_validate_sync_payload_rules():
    body = {
        "categories": [{"id": "paes", "name": "Pães"}, {"name": "sem id"}, {"id": "paes", "name": "Pães"}],
        "products": [{"id": "p1", "name": "Pão", "price": 1, "category": "paes"}],
    }
    payload = validate_sync_payload(body, max_image_kb=100)
    assert [c.id for c in payload.categories] == ["paes"]
    assert len(payload.products) == 1

    with pytest.raises(PayloadInvalidError) as exc:
        validate_sync_payload({"categories": [{"id": "a", "name": "Doces"}, {"id": "b", "name": "doces"}]}, 100)
    assert exc.value.details == ["doces"]

    big = {"products": [{"id": "p", "name": "Bolo", "price": 1, "category": "doces", "image": _data_uri(4096)}]}
    with pytest.raises(PayloadInvalidError) as exc:
        validate_sync_payload(big, max_image_kb=1)
    assert "Bolo" in exc.value.details[0]

    with pytest.raises(PayloadInvalidError):
        validate_sync_payload({"categories": {}}, 100)
    with pytest.raises(PayloadInvalidError):
        validate_sync_payload([], 100)
