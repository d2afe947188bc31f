from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from form_pilot.errors import BrowserLaunchError, SessionBusy
from form_pilot.models import ToolCall
from form_pilot.sessions.registry import SessionRegistry
from form_pilot.tools.builtin import build_default_catalog


def test_get_or_create_reuses_live_session(browser_factory):
    factory = browser_factory()
    registry = SessionRegistry(factory)

    first = registry.get_or_create("alpha")
    second = registry.get_or_create("alpha")

    assert first is second
    assert len(factory.created) == 1
    assert first.browser.launches == 1
    assert registry.ids() == ["alpha"]


def test_concurrent_creation_launches_one_browser(browser_factory):
    factory = browser_factory()
    registry = SessionRegistry(factory)

    with ThreadPoolExecutor(max_workers=8) as pool:
        sessions = list(pool.map(lambda _: registry.get_or_create("shared"), range(16)))

    assert len({id(session) for session in sessions}) == 1
    assert len(factory.created) == 1
    assert len(registry) == 1


def test_creation_for_one_id_does_not_block_another(browser_factory):
    inner = browser_factory()
    entered = threading.Event()
    release = threading.Event()

    def factory(session_id):
        if session_id == "slow":
            entered.set()
            release.wait(5)
        return inner(session_id)

    registry = SessionRegistry(factory, lock_timeout=0.05)
    worker = threading.Thread(target=registry.get_or_create, args=("slow",))
    worker.start()
    try:
        assert entered.wait(5)
        assert registry.get_or_create("fast").id == "fast"
        with pytest.raises(SessionBusy):
            registry.get_or_create("slow")
    finally:
        release.set()
        worker.join(5)

    assert registry.get("slow") is not None


def test_launch_failure_leaves_no_session(browser_factory):
    factory = browser_factory(fail_launch=True)
    registry = SessionRegistry(factory)

    with pytest.raises(BrowserLaunchError):
        registry.get_or_create("broken")

    assert registry.get("broken") is None
    assert len(registry) == 0
    assert factory.created[0].closed


def test_close_releases_browser_and_is_idempotent(browser_factory):
    registry = SessionRegistry(browser_factory())
    session = registry.get_or_create("alpha")

    assert registry.close("alpha") is True
    assert registry.close("alpha") is False
    assert session.closed
    assert session.browser.shutdowns == 1
    assert registry.get("alpha") is None


def test_recreated_session_starts_fresh(browser_factory):
    factory = browser_factory()
    registry = SessionRegistry(factory)
    first = registry.get_or_create("alpha")
    registry.close("alpha")

    second = registry.get_or_create("alpha")

    assert second is not first
    assert second.conversation == []
    assert len(factory.created) == 2


def test_externally_closed_browser_is_replaced(browser_factory):
    registry = SessionRegistry(browser_factory())
    first = registry.get_or_create("alpha")
    first.browser.close()

    assert registry.get("alpha") is None
    assert registry.get_or_create("alpha") is not first


def test_close_all(browser_factory):
    registry = SessionRegistry(browser_factory())
    sessions = [registry.get_or_create(name) for name in ("a", "b", "c")]

    registry.close_all()

    assert len(registry) == 0
    assert all(session.closed for session in sessions)


def test_per_id_locks_are_released_once_unused(browser_factory):
    registry = SessionRegistry(browser_factory())

    for i in range(200):
        registry.get_or_create(f"s{i}")
        registry.close(f"s{i}")
    for i in range(50):
        registry.close(f"never-{i}")

    assert registry._key_locks == {}
    assert len(registry) == 0


def test_busy_session_lock_survives_until_last_waiter(browser_factory):
    inner = browser_factory()
    entered = threading.Event()
    release = threading.Event()

    def factory(session_id):
        entered.set()
        release.wait(5)
        return inner(session_id)

    registry = SessionRegistry(factory, lock_timeout=0.05)
    worker = threading.Thread(target=registry.get_or_create, args=("slow",))
    worker.start()
    try:
        assert entered.wait(5)
        with pytest.raises(SessionBusy):
            registry.close("slow")
        assert list(registry._key_locks) == ["slow"]
    finally:
        release.set()
        worker.join(5)

    assert registry._key_locks == {}
    assert registry.get("slow") is not None


def test_filling_one_session_leaves_another_untouched(browser_factory):
    registry = SessionRegistry(browser_factory(elements={"#name": "", "#email": ""}))
    catalog = build_default_catalog()
    first = registry.get_or_create("a")
    second = registry.get_or_create("b")
    forms_before = second.browser.extract_page_info("forms")
    start = threading.Barrier(2)

    def fill():
        start.wait(5)
        call = ToolCall(name="fill_form", arguments={"fields": [{"selector": "#name", "value": "Ada"}]})
        return catalog.dispatch(call, registry.get_or_create("a").browser)

    def extract():
        start.wait(5)
        call = ToolCall(name="extract_page_info", arguments={"info_type": "forms"})
        return catalog.dispatch(call, registry.get_or_create("b").browser)

    with ThreadPoolExecutor(max_workers=2) as pool:
        filled = pool.submit(fill)
        extracted = pool.submit(extract)
        assert filled.result(5).success
        assert extracted.result(5).success

    assert first.browser.elements["#name"] == "Ada"
    assert second.browser.elements["#name"] == ""
    assert second.browser.actions("fill") == []
    assert second.browser.extract_page_info("forms") == forms_before
