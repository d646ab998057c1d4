"""Tests for the watch & reload loop."""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from assetflow import Resolver, TaskRegistry
from assetflow.errors import ProcessingError
from assetflow.server import ReloadChannel
from assetflow.watch import (
    DebounceTracker,
    WatchBinding,
    WatchSession,
    WatchState,
    _EventHandler,
    watch_roots,
)


class RecordingChannel(ReloadChannel):
    """Reload channel that remembers what it was told and the session state."""

    def __init__(self, session_ref=None):
        super().__init__()
        self.sent = []
        self.session_ref = session_ref
        self.states = []

    def notify(self, paths=()):
        if self.session_ref is not None:
            self.states.append(self.session_ref[0].state)
        self.sent.append(list(paths))
        return super().notify(paths)


def _session(recorder, temp_dir, bindings, failures=None, channel=None):
    failures = failures or {}
    registry = TaskRegistry()
    for name in ("sass", "js", "fonts", "wiredep"):
        registry.register(name, [], recorder.body(name, fail=failures.get(name)))
    registry.freeze()
    return WatchSession(
        Resolver(registry, name="watch"),
        bindings,
        channel=channel if channel is not None else RecordingChannel(),
        debounce_ms=0,
        root=temp_dir,
    )


DEV_BINDINGS = [
    WatchBinding.of(["app/*.html", "app/assets/images/**/*"], reload=True),
    WatchBinding.of("app/assets/sass/**/*.scss", "sass", reload=True),
    WatchBinding.of("app/assets/js/**/*.js", "js", reload=True),
    WatchBinding.of("bower.json", ["wiredep", "fonts"]),
]


class TestDebounceTracker:
    """Tests for DebounceTracker class."""

    def test_init_default_debounce(self):
        tracker = DebounceTracker()
        assert tracker.debounce_seconds == 0.2

    def test_init_custom_debounce(self):
        tracker = DebounceTracker(debounce_ms=1000)
        assert tracker.debounce_seconds == 1.0

    def test_unknown_key_is_ready(self):
        tracker = DebounceTracker(debounce_ms=100)
        assert tracker.remaining("js") == 0.0

    def test_recent_event_holds_key_back(self):
        tracker = DebounceTracker(debounce_ms=1000)

        tracker.record("js")

        assert 0.5 < tracker.remaining("js") <= 1.0

    def test_ready_after_quiet_window(self):
        tracker = DebounceTracker(debounce_ms=50)
        tracker.record("js")

        time.sleep(0.1)

        assert tracker.remaining("js") == 0.0

    def test_new_event_restarts_window(self):
        tracker = DebounceTracker(debounce_ms=100)
        tracker.record("js")
        time.sleep(0.06)

        tracker.record("js")

        assert tracker.remaining("js") > 0.05

    def test_keys_independent(self):
        tracker = DebounceTracker(debounce_ms=1000)

        tracker.record("js")

        assert tracker.remaining("sass") == 0.0

    def test_forget(self):
        tracker = DebounceTracker(debounce_ms=1000)
        tracker.record("js")

        tracker.forget("js")
        tracker.forget("js")

        assert tracker.remaining("js") == 0.0

    def test_cleanup_old_events(self):
        tracker = DebounceTracker(debounce_ms=100)
        tracker.record("js")
        tracker.record("sass")

        tracker.cleanup_old_events(max_age_seconds=0)

        assert len(tracker._pending_events) == 0

    def test_cleanup_preserves_recent_events(self):
        tracker = DebounceTracker(debounce_ms=100)
        tracker.record("js")

        tracker.cleanup_old_events(max_age_seconds=60)

        assert "js" in tracker._pending_events


class TestWatchBinding:
    """Tests for WatchBinding matching."""

    def test_of_normalizes_strings(self):
        binding = WatchBinding.of("app/assets/js/**/*.js", "js")

        assert binding.patterns == ("app/assets/js/**/*.js",)
        assert binding.tasks == ("js",)
        assert binding.reload is False

    def test_matches_nested_and_top_level(self):
        binding = WatchBinding.of("app/assets/sass/**/*.scss", "sass")

        assert binding.matches("app/assets/sass/main.scss")
        assert binding.matches("app/assets/sass/parts/_grid.scss")
        assert not binding.matches("app/assets/sass/main.css")
        assert not binding.matches("app/assets/js/main.js")

    def test_literal_pattern(self):
        binding = WatchBinding.of("bower.json", ["wiredep", "fonts"])

        assert binding.matches("bower.json")
        assert not binding.matches("app/bower.json")

    def test_describe(self):
        binding = WatchBinding.of("app/*.html", reload=True)

        assert binding.describe() == "app/*.html → - + reload"

    def test_watch_roots(self):
        roots = watch_roots(DEV_BINDINGS)

        assert roots[Path("app")] is False
        assert roots[Path("app/assets/images")] is True
        assert roots[Path("app/assets/sass")] is True
        assert roots[Path(".")] is False


class TestWatchSession:
    """Tests for event routing, re-runs and reload notification."""

    def test_change_runs_only_bound_task(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        matched = session.handle_path("app/assets/sass/main.scss")
        assert session.process_next(timeout=None) is True

        assert [b.tasks for b in matched] == [("sass",)]
        assert recorder.calls == ["sass"]
        assert session.channel.sent == [["app/assets/sass/main.scss"]]
        assert session.state is WatchState.IDLE

    def test_manifest_change_runs_both_tasks(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.handle_path("bower.json")
        session.drain()

        assert recorder.calls == ["wiredep", "fonts"]
        assert session.channel.sent == []

    def test_absolute_paths_relative_to_root(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.handle_path(temp_dir / "app" / "assets" / "js" / "main.js")
        session.drain()

        assert recorder.calls == ["js"]

    def test_unmatched_path_queues_nothing(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        assert session.handle_path("README.md") == []
        assert session.process_next(timeout=None) is False
        assert recorder.calls == []

    def test_reload_only_binding(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.handle_path("app/index.html")
        session.drain()

        assert recorder.calls == []
        assert session.channel.sent == [["app/index.html"]]

    def test_failure_keeps_session_alive(self, recorder, temp_dir):
        session = _session(
            recorder,
            temp_dir,
            DEV_BINDINGS,
            failures={"sass": ProcessingError("sass", "Expected ';'", location="main.scss:3:7")},
        )

        session.handle_path("app/assets/sass/main.scss")
        assert session.process_next(timeout=None) is True

        assert session.failures == 1
        assert session.state is WatchState.IDLE
        assert session.channel.sent == []

        session.handle_path("app/assets/js/main.js")
        session.drain()

        assert recorder.calls == ["sass", "js"]
        assert session.channel.sent == [["app/assets/js/main.js"]]

    def test_unexpected_exception_is_contained(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS, failures={"js": KeyError("boom")})

        session.handle_path("app/assets/js/main.js")
        session.drain()

        assert session.failures == 1
        session.handle_path("app/assets/js/main.js")
        session.drain()
        assert recorder.calls == ["js", "js"]

    def test_burst_coalesces_into_one_run(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.handle_path("app/assets/js/main.js")
        session.handle_path("app/assets/js/vendor/util.js")
        session.handle_path("app/assets/js/main.js")
        runs = session.drain()

        assert runs == 1
        assert recorder.calls == ["js"]
        assert session.channel.sent == [
            ["app/assets/js/main.js", "app/assets/js/vendor/util.js"]
        ]

    def test_second_save_runs_again(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)
        session.debounce = DebounceTracker(debounce_ms=200)

        session.handle_path("app/assets/js/main.js")
        session.drain()
        session.handle_path("app/assets/js/main.js")
        session.drain()

        assert recorder.calls == ["js", "js"]

    def test_burst_waits_for_quiet_window(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)
        session.debounce = DebounceTracker(debounce_ms=150)

        start = time.monotonic()
        session.handle_path("app/assets/js/main.js")
        time.sleep(0.05)
        session.handle_path("app/assets/js/main.js")
        runs = session.drain()

        assert runs == 1
        assert recorder.calls == ["js"]
        assert time.monotonic() - start >= 0.2

    def test_change_during_run_queues_another_run(self, temp_dir):
        calls = []
        holder = []

        def body(params=None, ctx=None):
            calls.append("js")
            if len(calls) == 1:
                holder[0].handle_path("app/assets/js/main.js")

        registry = TaskRegistry()
        registry.register("js", [], body)
        session = WatchSession(
            Resolver(registry.freeze()),
            [WatchBinding.of("app/assets/js/**/*.js", "js")],
            debounce_ms=0,
            root=temp_dir,
        )
        holder.append(session)

        session.handle_path("app/assets/js/main.js")
        runs = session.drain()

        assert runs == 2
        assert calls == ["js", "js"]

    def test_state_transitions(self, temp_dir):
        states = []
        ref = []
        channel = RecordingChannel(session_ref=ref)
        registry = TaskRegistry()
        registry.register("sass", [], lambda params=None, ctx=None: states.append(ref[0].state))
        session = WatchSession(
            Resolver(registry.freeze()),
            [WatchBinding.of("app/**/*.scss", "sass", reload=True)],
            channel=channel,
            debounce_ms=0,
            root=temp_dir,
        )
        ref.append(session)

        assert session.state is WatchState.IDLE
        session.handle_path("app/main.scss")
        session.drain()

        assert states == [WatchState.TRIGGERED]
        assert channel.states == [WatchState.NOTIFYING]
        assert session.state is WatchState.IDLE

    def test_watch_runs_are_live(self, temp_dir):
        seen = []
        registry = TaskRegistry()
        registry.register("lint:test", [], lambda params=None, ctx=None: seen.append(ctx.live))
        session = WatchSession(
            Resolver(registry.freeze()),
            [WatchBinding.of("test/spec/**/*.js", "lint:test")],
            params={"watch": {"debounce_ms": 0}},
            debounce_ms=0,
            root=temp_dir,
        )

        session.handle_path("test/spec/a.spec.js")
        session.drain()

        assert seen == [True]

    def test_start_and_stop_observer(self, recorder, temp_dir):
        (temp_dir / "app" / "assets" / "js").mkdir(parents=True)
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.start()
        try:
            assert session.is_running() is True
        finally:
            session.stop()

        assert session.is_running() is False

    def test_stop_when_not_running(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, DEV_BINDINGS)

        session.stop()

        assert session.is_running() is False

    def test_run_forever_returns_after_stop(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, [])
        timer = threading.Timer(0.2, session.stop)
        timer.start()

        session.run_forever(poll=0.05)

        timer.join()
        assert session.is_running() is False

    def test_real_file_change_triggers_task(self, recorder, temp_dir):
        js_dir = temp_dir / "app" / "assets" / "js"
        js_dir.mkdir(parents=True)
        session = _session(recorder, temp_dir, DEV_BINDINGS)
        session.start()
        try:
            time.sleep(0.2)
            (js_dir / "new.js").write_text("let a = 1;\n")
            assert session.process_next(timeout=5.0) is True
        finally:
            session.stop()

        assert recorder.calls == ["js"]

    def test_missing_root_watches_nearest_parent(self, recorder, temp_dir):
        (temp_dir / "app" / "assets" / "sass").mkdir(parents=True)
        session = _session(
            recorder,
            temp_dir,
            [
                WatchBinding.of("app/assets/sass/**/*.scss", "sass"),
                WatchBinding.of(".tmp/assets/fonts/**/*", reload=True),
            ],
        )
        root = temp_dir.resolve()

        roots = session.scheduled_roots()

        assert roots == {root / "app" / "assets" / "sass": True, root: True}

    def test_existing_roots_keep_their_recursion(self, recorder, temp_dir):
        (temp_dir / "app").mkdir()
        session = _session(recorder, temp_dir, [WatchBinding.of("app/*.html", reload=True)])

        assert session.scheduled_roots() == {temp_dir.resolve() / "app": False}

    def test_directory_created_after_start_is_watched(self, recorder, temp_dir):
        session = _session(recorder, temp_dir, [WatchBinding.of(".tmp/assets/fonts/**/*", "fonts")])
        session.start()
        try:
            time.sleep(0.2)
            fonts_dir = temp_dir / ".tmp" / "assets" / "fonts"
            fonts_dir.mkdir(parents=True)
            time.sleep(0.2)
            (fonts_dir / "icons.woff").write_bytes(b"font")
            assert session.process_next(timeout=5.0) is True
        finally:
            session.stop()

        assert recorder.calls == ["fonts"]


class TestEventHandler:
    """Tests for watchdog event routing."""

    def test_file_events_forwarded(self):
        session = MagicMock()
        handler = _EventHandler(session)

        handler.on_created(FileCreatedEvent("/p/app/a.html"))
        handler.on_modified(FileModifiedEvent("/p/app/b.html"))

        assert [c.args[0] for c in session.handle_path.call_args_list] == [
            "/p/app/a.html",
            "/p/app/b.html",
        ]

    def test_directory_events_ignored(self):
        session = MagicMock()
        handler = _EventHandler(session)

        handler.on_modified(DirModifiedEvent("/p/app"))

        session.handle_path.assert_not_called()

    def test_move_uses_destination(self):
        session = MagicMock()
        handler = _EventHandler(session)

        handler.on_moved(FileMovedEvent("/p/app/a.tmp", "/p/app/a.html"))

        session.handle_path.assert_called_once_with("/p/app/a.html")
