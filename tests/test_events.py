"""
Tests for EventEmitter.
"""

from unittest.mock import MagicMock

from menuhub.common.events import EventEmitter


class TestEventEmitter:
    """Tests for EventEmitter class."""

    def test_emit_calls_listener_with_data(self):
        """Test that listeners receive the emitted data."""
        events = EventEmitter()
        callback = MagicMock()
        events.on("ready", callback)

        events.emit("ready", {"a": 1})

        callback.assert_called_once_with({"a": 1})

    def test_emit_without_data_passes_none(self):
        """Test that emit without data passes None."""
        events = EventEmitter()
        callback = MagicMock()
        events.on("ready", callback)

        events.emit("ready")

        callback.assert_called_once_with(None)

    def test_listeners_called_in_registration_order(self):
        """Test listeners run in the order they were added."""
        events = EventEmitter()
        calls = []
        events.on("x", lambda _: calls.append("first"))
        events.on("x", lambda _: calls.append("second"))

        events.emit("x")

        assert calls == ["first", "second"]

    def test_unsubscribe_removes_listener(self):
        """Test the handle returned by on() removes the listener."""
        events = EventEmitter()
        callback = MagicMock()
        unsubscribe = events.on("x", callback)

        unsubscribe()
        events.emit("x")

        callback.assert_not_called()
        assert events.listener_count("x") == 0

    def test_unsubscribe_twice_is_safe(self):
        """Test calling the unsubscribe handle again does nothing."""
        events = EventEmitter()
        unsubscribe = events.on("x", MagicMock())
        unsubscribe()
        unsubscribe()
        assert events.listener_count("x") == 0

    def test_unsubscribe_twice_keeps_other_registration(self):
        """Test a repeated handle call leaves a second registration of the same callback."""
        events = EventEmitter()
        callback = MagicMock()
        unsubscribe_first = events.on("x", callback)
        events.on("x", callback)

        unsubscribe_first()
        unsubscribe_first()

        assert events.listener_count("x") == 1
        events.emit("x", 1)
        callback.assert_called_once_with(1)

    def test_failing_listener_does_not_stop_others(self):
        """Test a raising listener is isolated from the rest."""
        events = EventEmitter()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        events.on("x", failing)
        events.on("x", healthy)

        events.emit("x", 1)

        failing.assert_called_once_with(1)
        healthy.assert_called_once_with(1)

    def test_listener_added_during_emit_not_called(self):
        """Test emit dispatches to a snapshot of listeners."""
        events = EventEmitter()
        late = MagicMock()
        events.on("x", lambda _: events.on("x", late))

        events.emit("x")

        late.assert_not_called()
        assert events.listener_count("x") == 2

    def test_clear(self):
        """Test clear removes every listener."""
        events = EventEmitter()
        events.on("a", MagicMock())
        events.on("b", MagicMock())

        events.clear()

        assert events.listener_count("a") == 0
        assert events.listener_count("b") == 0

    def test_emit_unknown_event(self):
        """Test emitting with no listeners is a no-op."""
        EventEmitter().emit("nobody-listens", {"x": 1})
