"""Unit tests for port interfaces."""

import pytest


@pytest.mark.core
@pytest.mark.tier(0)
def test_null_listener_satisfies_cache_listener():
    """NullCacheListener should implement every CacheListener event."""
    from fhircache.core.ports import CacheListener, NullCacheListener

    listener = NullCacheListener()

    assert isinstance(listener, CacheListener)
    listener.before_fetch("default", "a", "1")
    listener.after_fetch("default", "a", "1", None)


@pytest.mark.core
@pytest.mark.tier(0)
def test_cache_listeners_fan_out_in_order():
    """CacheListeners forwards each event to every listener in order."""
    from fhircache.core.ports import CacheListener, CacheListeners, NullCacheListener

    calls: list[tuple[str, str]] = []

    class Named(NullCacheListener):
        def __init__(self, label: str) -> None:
            self.label = label

        def on_cache_hit(self, registry: str, name: str, version: str) -> None:
            calls.append((self.label, name))

    listeners = CacheListeners([Named("first"), Named("second")])
    listeners.on_cache_hit("default", "a", "1")
    listeners.on_delete("default", "a", "1")

    assert isinstance(listeners, CacheListener)
    assert calls == [("first", "a"), ("second", "a")]


@pytest.mark.core
@pytest.mark.tier(0)
def test_cache_listeners_log_and_continue_when_a_listener_raises(caplog):
    """A failing listener is logged and does not stop later listeners."""
    import logging

    from fhircache.core.ports import CacheListeners, NullCacheListener

    calls: list[str] = []

    class Broken(NullCacheListener):
        def on_delete(self, registry: str, name: str, version: str) -> None:
            raise ValueError("listener bug")

    class Recording(NullCacheListener):
        def on_delete(self, registry: str, name: str, version: str) -> None:
            calls.append(name)

    listeners = CacheListeners([Broken(), Recording()])
    with caplog.at_level(logging.ERROR, logger="fhircache"):
        listeners.on_delete("default", "a", "1")

    assert calls == ["a"]
    assert "failed in on_delete" in caplog.text
    assert "listener bug" in caplog.text


@pytest.mark.core
@pytest.mark.tier(0)
def test_package_cache_satisfies_package_store_port(tmp_path):
    """PackageCache should implement PackageStorePort."""
    from fhircache.adapters.cache import PackageCache
    from fhircache.core.ports import PackageStorePort

    assert isinstance(PackageCache(tmp_path), PackageStorePort)


@pytest.mark.core
@pytest.mark.tier(0)
def test_task_context_is_immutable():
    """TaskContext should be a frozen value object."""
    from dataclasses import FrozenInstanceError

    from fhircache.adapters.executor import TaskRunner
    from fhircache.core.cancellation import CancellationToken
    from fhircache.core.ports import TaskContext

    context = TaskContext(runner=TaskRunner(1), cancellation=CancellationToken())

    with pytest.raises(FrozenInstanceError):
        context.runner = TaskRunner(2)  # type: ignore[misc]
