import asyncio
from cardapio_padaria.client.broadcast import BroadcastChannel
from cardapio_padaria.client.local_cache import LocalCache
from cardapio_padaria.client.synced_data import SyncedData
from cardapio_padaria.core.errors import ResponseShapeError
from cardapio_padaria.domain.reserved import HIDDEN_CATEGORY_ID, logo_record, site_config_record
from conftest import make_category, make_product


def _new(remote, cache, hub, client_settings) -> SyncedData:
    return SyncedData(remote, cache, BroadcastChannel(client_settings.broadcast_channel, hub), client_settings)


async def test_mount_hydrates_from_cache_before_fetch(fake_remote, cache, hub, client_settings):
    cache.save([make_category("antiga", "Antiga")], [make_product("velho", "antiga")], None)
    fake_remote.gate = asyncio.Event()
    synced = _new(fake_remote, cache, hub, client_settings)
    async with synced:
        state = synced.snapshot()
        assert [c.id for c in state.categories] == ["antiga"]
        assert state.loading
        fake_remote.gate.set()
        await synced.wait_idle()
        state = synced.snapshot()
        assert [c.id for c in state.categories] == ["paes", "doces"]
        assert not state.loading and state.error is None and state.last_sync
        assert not state.realtime_connected
    assert [p.id for p in cache.load().products] == ["pao-frances", "sonho"]


async def test_refresh_partitions_system_records(fake_remote, cache, hub, client_settings):
    horarios = {"seg-sex": "6h às 20h"}
    fake_remote.products += [
        logo_record("https://cdn.exemplo.com/logo.png"),
        site_config_record("horarios", horarios),
        make_product("rascunho", HIDDEN_CATEGORY_ID),
    ]
    async with _new(fake_remote, cache, hub, client_settings) as synced:
        await synced.wait_idle()
        state = synced.snapshot()
    assert [p.id for p in state.products] == ["pao-frances", "sonho"]
    assert state.logo == "https://cdn.exemplo.com/logo.png"
    assert state.site_config == {"horarios": horarios}
    assert fake_remote.invalidations >= 1


async def test_categories_sorted_with_missing_order_last(fake_remote, cache, hub, client_settings):
    fake_remote.categories = [make_category("sem-ordem", order=None), make_category("b", order=2),
                              make_category("a", order=0)]
    async with _new(fake_remote, cache, hub, client_settings) as synced:
        await synced.wait_idle()
        assert [c.id for c in synced.snapshot().categories] == ["a", "b", "sem-ordem"]
        synced.apply_optimistic(categories=[make_category("z", order=None), make_category("y", order=5)])
        assert [c.id for c in synced.snapshot().categories] == ["y", "z"]


async def test_exhausted_retries_keep_last_known_good(synced, fake_remote):
    before = synced.snapshot()
    calls = fake_remote.fetch_calls
    fake_remote.fail_fetch = 3
    assert await synced.refresh()
    state = synced.snapshot()
    assert fake_remote.fetch_calls - calls == 3
    assert state.error.startswith("Sincronização offline")
    assert state.categories == before.categories and state.products == before.products
    assert state.last_sync >= before.last_sync and not state.loading


async def test_retry_recovers_before_giving_up(synced, fake_remote):
    fake_remote.fail_fetch = 2
    fake_remote.products = [make_product("novo", "paes")]
    assert await synced.refresh()
    state = synced.snapshot()
    assert state.error is None and [p.id for p in state.products] == ["novo"]


async def test_failure_without_memory_falls_back_to_cache(fake_remote, cache, hub, client_settings):
    cache.save([make_category("paes", "Pães")], [make_product("pao-frances")], "https://cdn.exemplo.com/logo.png")
    fake_remote.fail_fetch = 99
    async with _new(fake_remote, cache, hub, client_settings) as synced:
        await synced.wait_idle()
        state = synced.snapshot()
    assert state.error and [p.id for p in state.products] == ["pao-frances"]
    assert state.logo == "https://cdn.exemplo.com/logo.png"


async def test_shape_error_is_not_retried_by_hook(synced, fake_remote):
    calls = fake_remote.fetch_calls

    async def broken(force_refresh=False):
        fake_remote.fetch_calls += 1
        raise ResponseShapeError("Resposta inválida do servidor")

    fake_remote.fetch_all = broken
    await synced.refresh()
    assert fake_remote.fetch_calls - calls == 1
    assert "Resposta inválida" in synced.snapshot().error


async def test_concurrent_refresh_runs_once_more_after_current(synced, fake_remote):
    calls = fake_remote.fetch_calls
    fake_remote.gate = asyncio.Event()
    first = asyncio.create_task(synced.refresh())
    await asyncio.sleep(0)
    assert await synced.refresh() is False
    fake_remote.gate.set()
    assert await first is True
    await synced.wait_idle()
    assert fake_remote.fetch_calls - calls == 2


async def test_notify_change_is_debounced(synced, fake_remote):
    synced.s.debounce_s = 0.05
    calls = fake_remote.fetch_calls
    for _ in range(5):
        synced.notify_change()
        await asyncio.sleep(0)
    assert fake_remote.fetch_calls == calls
    await asyncio.sleep(0.15)
    await synced.wait_idle()
    assert fake_remote.fetch_calls - calls == 1


async def test_schedule_refresh_runs_after_delay(synced, fake_remote):
    calls = fake_remote.fetch_calls
    fake_remote.products = [make_product("fresquinho", "paes")]
    synced.schedule_refresh(0.01)
    assert fake_remote.fetch_calls == calls
    await asyncio.sleep(0.05)
    await synced.wait_idle()
    assert [p.id for p in synced.snapshot().products] == ["fresquinho"]


async def test_poll_interval_triggers_refresh(fake_remote, cache, hub, client_settings):
    client_settings.poll_interval_s = 0.02
    async with _new(fake_remote, cache, hub, client_settings) as synced:
        await asyncio.sleep(0.09)
        await synced.wait_idle()
    assert fake_remote.fetch_calls >= 3


async def test_unmount_drops_late_results(fake_remote, cache, hub, client_settings):
    fake_remote.gate = asyncio.Event()
    synced = _new(fake_remote, cache, hub, client_settings)
    await synced.start()
    await asyncio.sleep(0)
    await synced.aclose()
    await synced.aclose()
    fake_remote.gate.set()
    await synced.wait_idle()
    state = synced.snapshot()
    assert state.products == [] and state.loading
    assert synced.channel.closed and not synced.mounted


async def test_apply_optimistic_distinguishes_absent_logo(synced):
    synced.apply_optimistic(logo="https://cdn.exemplo.com/logo.png")
    synced.apply_optimistic(products=[])
    assert synced.snapshot().logo == "https://cdn.exemplo.com/logo.png"
    synced.apply_optimistic(logo=None)
    assert synced.snapshot().logo is None


async def test_listeners_and_snapshot_isolation(synced):
    seen = []
    with synced.subscribe(seen.append):
        synced.apply_optimistic(products=[make_product("bolo", "doces")])
    synced.apply_optimistic(products=[])
    assert len(seen) == 1 and seen[0].products[0].id == "bolo"
    snap = synced.snapshot()
    snap.products.append(make_product("intruso"))
    assert synced.snapshot().products == []


async def test_fetch_in_one_tab_reaches_the_other(fake_remote, remote_factory, tmp_path, hub, client_settings):
    stale = remote_factory()
    stale.categories = [make_category("velha", "Velha")]
    tab_a = _new(fake_remote, LocalCache(tmp_path / "a"), hub, client_settings)
    tab_b = _new(stale, LocalCache(tmp_path / "b"), hub, client_settings)
    async with tab_a, tab_b:
        await tab_a.wait_idle()
        await tab_b.wait_idle()
        received = []
        tab_b.channel.on_message(received.append)

        fake_remote.products = [make_product("broa", "paes"), logo_record("https://cdn.exemplo.com/logo.png")]
        await tab_a.refresh()

        state_a, state_b = tab_a.snapshot(), tab_b.snapshot()
        assert len(received) == 1
        assert state_b.categories == state_a.categories
        assert state_b.products == state_a.products
        assert state_b.logo == "https://cdn.exemplo.com/logo.png"
        assert stale.fetch_calls == 1


async def test_fetch_started_before_local_write_is_discarded(synced, fake_remote):
    calls = fake_remote.fetch_calls
    fake_remote.stale_reads = True
    fake_remote.gate = asyncio.Event()
    refreshing = asyncio.create_task(synced.refresh())
    await asyncio.sleep(0)
    synced.apply_optimistic(products=[make_product("bolo", "doces")])
    fake_remote.products = [make_product("bolo", "doces")]
    fake_remote.gate.set()
    assert await refreshing is True
    assert [p.id for p in synced.snapshot().products] == ["bolo"]
    await synced.wait_idle()
    assert fake_remote.fetch_calls - calls == 2
    state = synced.snapshot()
    assert [p.id for p in state.products] == ["bolo"] and not state.loading


async def test_unexpected_fetch_error_degrades_instead_of_hanging(synced, fake_remote):
    async def broken(force_refresh=False):
        raise RuntimeError("resposta corrompida")

    fake_remote.fetch_all = broken
    assert await synced.refresh()
    state = synced.snapshot()
    assert not state.loading and "resposta corrompida" in state.error
    assert [p.id for p in state.products] == ["pao-frances", "sonho"]
