"""Tests for the bounded signal aggregator and tab invalidation."""

import random

import pytest


def _signal(tab="tab-1", message="m", signal_id=None):
    from bugtrace.common.schemas import Severity, Signal, SignalKind
    kwargs = {"id": signal_id} if signal_id else {}
    return Signal(kind=SignalKind.CONSOLE, severity=Severity.ERROR, message=message, tab_scope=tab, **kwargs)


class TestAccept:
    def test_starts_empty(self):
        from bugtrace.collector import Aggregator, BufferState
        aggregator = Aggregator()
        assert aggregator.state == BufferState.EMPTY
        assert aggregator.snapshot() == ()

    def test_accept_appends_and_broadcasts(self):
        from bugtrace.collector import Aggregator, BufferState
        from bugtrace.relay import StateBroadcast
        seen = []
        aggregator = Aggregator(broadcast=seen.append)
        first, second = _signal(message="a"), _signal(message="b")

        aggregator.accept(first)
        aggregator.accept(second)

        assert aggregator.state == BufferState.POPULATED
        assert aggregator.snapshot() == (first, second)
        assert all(isinstance(m, StateBroadcast) for m in seen)
        assert [len(m.signals) for m in seen] == [1, 2]

    def test_buffer_bound_and_fifo_eviction(self):
        from bugtrace.collector import Aggregator
        aggregator = Aggregator()
        signals = [_signal(message=str(i)) for i in range(250)]

        for signal in signals:
            aggregator.accept(signal)
            assert len(aggregator) <= 200

        assert aggregator.snapshot() == tuple(signals[50:])
        assert aggregator.get_stats()["evicted"] == 50

    def test_eviction_ignores_severity(self):
        from bugtrace.collector import Aggregator
        from bugtrace.common.schemas import Severity, Signal, SignalKind
        aggregator = Aggregator(capacity=2)
        critical = Signal(kind=SignalKind.RUNTIME, severity=Severity.CRITICAL, tab_scope="t")
        aggregator.accept(critical)
        aggregator.accept(_signal())
        aggregator.accept(_signal())
        assert critical not in aggregator.snapshot()

    def test_duplicate_id_ignored(self):
        from bugtrace.collector import Aggregator
        seen = []
        aggregator = Aggregator(broadcast=seen.append)
        assert aggregator.accept(_signal(signal_id="sig_1"))
        assert not aggregator.accept(_signal(signal_id="sig_1", message="again"))
        assert len(aggregator) == 1
        assert len(seen) == 1

    def test_evicted_id_can_return(self):
        from bugtrace.collector import Aggregator
        aggregator = Aggregator(capacity=1)
        aggregator.accept(_signal(signal_id="sig_1"))
        aggregator.accept(_signal(signal_id="sig_2"))
        assert aggregator.accept(_signal(signal_id="sig_1"))

    def test_broadcast_failure_does_not_break_accept(self):
        from bugtrace.collector import Aggregator

        def broken(message):
            raise RuntimeError("observer gone")

        aggregator = Aggregator(broadcast=broken)
        assert aggregator.accept(_signal())
        assert len(aggregator) == 1

    def test_snapshot_is_a_copy(self):
        from bugtrace.collector import Aggregator
        aggregator = Aggregator()
        aggregator.accept(_signal())
        snapshot = aggregator.snapshot()
        aggregator.accept(_signal())
        assert len(snapshot) == 1

    def test_invalid_capacity(self):
        from bugtrace.collector import Aggregator
        with pytest.raises(ValueError):
            Aggregator(capacity=0)


class TestInvalidate:
    def test_removes_only_that_tab(self):
        from bugtrace.collector import Aggregator
        aggregator = Aggregator()
        keep = _signal(tab="tab-2")
        aggregator.accept(_signal(tab="tab-1"))
        aggregator.accept(keep)
        aggregator.accept(_signal(tab="tab-1"))

        assert aggregator.invalidate("tab-1") == 2
        assert aggregator.snapshot() == (keep,)

    def test_random_buffers(self):
        from bugtrace.collector import Aggregator
        rng = random.Random(7)
        for _ in range(20):
            aggregator = Aggregator(capacity=rng.randint(1, 50))
            for _ in range(rng.randint(0, 80)):
                aggregator.accept(_signal(tab=rng.choice(["a", "b", "c"])))
            aggregator.invalidate("b")
            assert all(s.tab_scope != "b" for s in aggregator.snapshot())

    def test_no_broadcast_when_nothing_removed(self):
        from bugtrace.collector import Aggregator
        seen = []
        aggregator = Aggregator(broadcast=seen.append)
        aggregator.accept(_signal(tab="tab-1"))
        seen.clear()

        assert aggregator.invalidate("tab-9") == 0
        assert seen == []

        aggregator.invalidate("tab-1")
        assert len(seen) == 1
        assert seen[0].signals == []

    def test_invalidated_ids_are_forgotten(self):
        from bugtrace.collector import Aggregator
        aggregator = Aggregator()
        aggregator.accept(_signal(signal_id="sig_1"))
        aggregator.invalidate("tab-1")
        assert aggregator.get("sig_1") is None
        assert aggregator.accept(_signal(signal_id="sig_1"))


class TestTabLifecycle:
    def test_navigation_records_time_and_purges(self):
        from datetime import datetime, timezone
        from bugtrace.collector import Aggregator
        aggregator = Aggregator()
        aggregator.accept(_signal(tab="tab-1"))
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)

        assert aggregator.tabs.navigation_started("tab-1", when) == 1
        assert aggregator.tabs.last_navigation("tab-1") == when
        assert aggregator.tabs.last_navigation("tab-2") is None
        assert len(aggregator) == 0


class TestHandle:
    def test_dispatches_relay_messages(self):
        from bugtrace.collector import Aggregator
        from bugtrace.relay import NavigationStarted, SignalCaptured, SyncRequest, SyncResponse
        aggregator = Aggregator()
        signal = _signal(tab="tab-1")

        assert aggregator.handle(SignalCaptured(signal=signal)) is None
        response = aggregator.handle(SyncRequest())
        assert isinstance(response, SyncResponse)
        assert response.signals == [signal]

        aggregator.handle(NavigationStarted(tab_scope="tab-1"))
        assert len(aggregator) == 0

    def test_ignores_outbound_messages(self):
        from bugtrace.collector import Aggregator
        from bugtrace.relay import StateBroadcast
        aggregator = Aggregator()
        assert aggregator.handle(StateBroadcast()) is None
