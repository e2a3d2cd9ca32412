import asyncio
from dataclasses import replace

import pytest

from dicom_grid.app import ViewerApp
from dicom_grid.config import Settings
from dicom_grid.errors import ErrorKind
from dicom_grid.grid import OverflowPolicy
from dicom_grid.models import MemoryFile, get_layout
from dicom_grid.routes import GridView, InvalidLayoutView, LoadScreenView, NoSeriesView


def test_all_valid_batch_binds_slot_zero(fake_engine, make_file, series_uids):
    files = [make_file(f"{n}.dcm", series_uids[0], n) for n in range(10, 0, -1)]

    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        loaded = await app.load_files(files)
        view = await app.navigate("/grid/1x1")
        return app, loaded, view

    app, loaded, view = asyncio.run(scenario())

    (group,) = loaded.value.series_groups
    assert group.series_instance_uid == series_uids[0]
    assert [r.instance_number for r in group.records] == list(range(1, 11))
    assert isinstance(view.value, GridView)
    assert view.value.assignment[0] is group
    assert fake_engine.viewports == {0: group}


def test_mixed_validity_batch(fake_engine, make_file, series_uids):
    files = [make_file(f"{n}.dcm", series_uids[n % 2], n) for n in range(8)]
    files[2:2] = [MemoryFile("broken-1", b"\x00" * 10), MemoryFile("broken-2", b"\x00" * 200)]

    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        return app, await app.load_files(files)

    app, loaded = asyncio.run(scenario())

    assert loaded.ok
    assert len(loaded.value.errors) == 2
    assert loaded.value.record_count == 8
    assert app.current_error() is None


def test_layout_downgrade_and_restore(fake_engine, make_file, series_uids):
    files = [make_file(f"s{i}", series_uids[i], 1) for i in range(3)]

    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        await app.load_files(files)
        wide = (await app.change_layout("2x2")).value
        narrow = (await app.change_layout("1x1")).value
        bound_narrow = dict(fake_engine.viewports)
        restored = (await app.change_layout(get_layout("2x2"))).value
        return app, wide, narrow, bound_narrow, restored

    app, wide, narrow, bound_narrow, restored = asyncio.run(scenario())

    groups = list(app.snapshot.series_groups)
    assert list(wide.slots) == groups + [None]
    assert list(narrow.slots) == groups[:1]
    assert bound_narrow == {0: groups[0]}
    assert restored == wide
    assert fake_engine.viewports == {0: groups[0], 1: groups[1], 2: groups[2]}


def test_layout_change_does_not_reparse(monkeypatch, fake_engine, make_file):
    from dicom_grid import ingest

    calls = []
    original = ingest.parse_bytes

    def counting_parse(*args, **kwargs):
        calls.append(args[1])
        return original(*args, **kwargs)

    monkeypatch.setattr(ingest, "parse_bytes", counting_parse)

    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        await app.load_files([make_file("a"), make_file("b")])
        parsed = len(calls)
        await app.navigate("/grid/3x3")
        await app.navigate("/grid/1x1")
        return parsed

    parsed = asyncio.run(scenario())

    assert parsed == 2
    assert len(calls) == 2


def test_operations_rejected_until_engine_ready(fake_engine, make_file):
    async def scenario():
        app = ViewerApp(fake_engine)
        return await app.load_files([make_file("a")]), await app.navigate("/")

    loaded, navigated = asyncio.run(scenario())

    assert loaded.error.kind is ErrorKind.INIT_ERROR
    assert navigated.error.kind is ErrorKind.INIT_ERROR
    assert fake_engine.calls == []


def test_failed_engine_blocks_everything(engine_factory, make_file):
    engine = engine_factory(fail_init=True)

    async def scenario():
        app = ViewerApp(engine)
        started = await app.start()
        loaded = await app.load_files([make_file("a")])
        changed = await app.change_layout("2x2")
        return app, started, loaded, changed

    app, started, loaded, changed = asyncio.run(scenario())

    assert not started.ok
    assert loaded.error is started.error
    assert changed.error is started.error
    assert app.current_error() is started.error
    assert app.snapshot.series_groups == ()


def test_total_failure_keeps_previous_grid(fake_engine, make_file):
    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        await app.load_files([make_file("good")])
        before = app.assignment
        failed = await app.load_files([MemoryFile("bad", b"bad")])
        return app, before, failed

    app, before, failed = asyncio.run(scenario())

    assert failed.error.kind is ErrorKind.EMPTY_RESULT
    assert app.assignment == before
    assert app.current_error() is failed.error
    assert 0 in fake_engine.viewports


def test_routes_through_app(fake_engine, make_file):
    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        no_series = (await app.navigate("/grid/2x2")).value
        await app.load_files([make_file("a")])
        home = (await app.navigate("/")).value
        invalid = (await app.navigate("/grid/7x7")).value
        return app, no_series, home, invalid

    app, no_series, home, invalid = asyncio.run(scenario())

    assert isinstance(no_series, NoSeriesView)
    assert isinstance(home, LoadScreenView)
    assert isinstance(invalid, InvalidLayoutView)
    assert app.snapshot.layout.token == "1x1"


def test_warn_policy_logs_hidden_series(caplog, fake_engine, make_file, series_uids):
    settings = replace(Settings(), overflow_policy=OverflowPolicy.WARN)
    files = [make_file(f"s{i}", series_uids[i], 1) for i in range(2)]

    async def scenario():
        app = ViewerApp(fake_engine, settings)
        await app.start()
        await app.load_files(files)
        return app

    with caplog.at_level("WARNING", logger="dicom_grid.app"):
        app = asyncio.run(scenario())

    assert app.assignment.hidden == app.snapshot.series_groups[1:]
    assert "not shown in layout 1x1" in caplog.text


def test_change_layout_rejects_unknown_token(fake_engine):
    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        await app.change_layout("9x9")

    with pytest.raises(ValueError):
        asyncio.run(scenario())


def test_unbind_failure_is_returned_as_data(engine_factory, make_file, series_uids):
    engine = engine_factory(fail_unbind={1})
    files = [make_file(f"s{i}", series_uids[i], 1) for i in range(2)]

    async def scenario():
        app = ViewerApp(engine)
        await app.start()
        await app.load_files(files)
        await app.change_layout("2x2")
        shrunk = await app.change_layout("1x1")
        return app, shrunk

    app, shrunk = asyncio.run(scenario())

    assert shrunk.ok
    assert shrunk.value.layout.token == "1x1"
    assert set(app.last_bind_report.errors) == {1}
    assert app.last_bind_report.errors[1].kind is ErrorKind.RENDER_ERROR
    assert list(app.viewports.bound) == [0]


def test_mistyped_layout_route_is_invalid(fake_engine, make_file):
    async def scenario():
        app = ViewerApp(fake_engine)
        await app.start()
        await app.load_files([make_file("a")])
        return (await app.navigate("/grid/2X2")).value

    view = asyncio.run(scenario())

    assert view == InvalidLayoutView("2X2")
