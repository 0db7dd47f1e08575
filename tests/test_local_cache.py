from cardapio_padaria.client.local_cache import LocalCache, CATEGORIES_KEY, PRODUCTS_KEY, LOGO_KEY
from conftest import make_category, make_product


def test_save_and_load(tmp_path):
    cache = LocalCache(tmp_path / "cache")
    cats = [make_category("paes", "Pães", 0)]
    prods = [make_product("sonho", "doces", 7.0)]
    cache.save(cats, prods, "data:image/png;base64,AAAA")
    snap = cache.load()
    assert snap.categories == cats
    assert snap.products == prods
    assert snap.logo == "data:image/png;base64,AAAA"
    assert not snap.empty


def test_missing_dir_loads_empty(tmp_path):
    snap = LocalCache(tmp_path / "nao-existe").load()
    assert snap.empty and snap.categories == [] and snap.logo is None


def test_none_logo_removes_key(tmp_path):
    cache = LocalCache(tmp_path)
    cache.save([], [], "https://cdn.exemplo.com/logo.png")
    cache.save([], [], None)
    assert not (tmp_path / f"{LOGO_KEY}.json").exists()
    assert cache.load().logo is None


def test_corrupted_key_is_removed(tmp_path):
    cache = LocalCache(tmp_path)
    cache.save([make_category("paes", "Pães")], [make_product("sonho", "doces")], None)
    (tmp_path / f"{PRODUCTS_KEY}.json").write_text("{nao é json", encoding="utf-8")
    (tmp_path / f"{CATEGORIES_KEY}.json").write_text('[{"id": "", "name": ""}]', encoding="utf-8")
    snap = cache.load()
    assert snap.products == [] and snap.categories == []
    assert not (tmp_path / f"{PRODUCTS_KEY}.json").exists()
    assert not (tmp_path / f"{CATEGORIES_KEY}.json").exists()


def test_save_failure_is_swallowed(tmp_path):
    blocker = tmp_path / "arquivo"
    blocker.write_text("x")
    LocalCache(blocker / "sub").save([make_category("paes")], [], None)


def test_clear(tmp_path):
    cache = LocalCache(tmp_path)
    cache.save([make_category("paes")], [make_product("p")], "https://cdn.exemplo.com/l.png")
    cache.clear()
    assert cache.load().empty
