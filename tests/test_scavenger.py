"""
Test module for kvlog.scavenger
"""

import threading
from unittest.mock import Mock, call

import pytest

from kvlog.exceptions import InvalidLevelError, InvalidPatternError
from kvlog.fields import Field
from kvlog.interfaces import Logger, Printer
from kvlog.levels import Level
from kvlog.scavenger import EntryStore, LogEntry, Scavenger


class TestScavengerLogging:
    """Test cases for recording log calls."""

    def test_is_a_logger(self, scavenger):
        assert isinstance(scavenger, Logger)

    def test_warnw_renders_fields_in_call_order(self, scavenger):
        """Test per-call fields keep the order they were passed in."""
        scavenger.warnw("hello", "foo", 100, "bar", "qux")

        assert scavenger.entries() == [LogEntry(Level.WARN, 'hello\t{"foo": 100, "bar": "qux"}')]

    def test_plain_and_formatted_calls(self, scavenger):
        scavenger.debug("a", 1, 2)
        scavenger.info(100, 200)
        scavenger.warnf("%s=%d", "x", 5)
        scavenger.error("boom")

        assert [(e.level, e.message) for e in scavenger.entries()] == [
            (Level.DEBUG, "a1 2"),
            (Level.INFO, "100 200"),
            (Level.WARN, "x=5"),
            (Level.ERROR, "boom"),
        ]

    def test_trailing_newline_stripped(self, scavenger):
        scavenger.infof("line\n")
        scavenger.infow("other\n")

        assert [e.message for e in scavenger.entries()] == ["line", "other"]

    def test_field_objects(self, scavenger):
        scavenger.infow("msg", Field("name", "ariel"), "count", 2)

        assert scavenger.entries()[0].message == 'msg\t{"name": "ariel", "count": 2}'

    def test_dangling_key_scenario(self, scavenger):
        """Test an odd key/value list records a diagnostic before the entry."""
        scavenger.debugw("msg", "onlykey")

        assert scavenger.entries() == [
            LogEntry(Level.ERROR, 'Ignored key without a value.\t{"ignored": "onlykey"}'),
            LogEntry(Level.DEBUG, "msg"),
        ]

    def test_non_string_keys(self, scavenger):
        scavenger.infow("msg", 1, "one", "ok", True)

        assert scavenger.dump() == (
            'ERROR\tIgnored key-value pairs with non-string keys.\t{"invalid": [[1,"one"]]}\n'
            'INFO\tmsg\t{"ok": true}\n'
        )

    def test_len_counts_diagnostics(self, scavenger):
        scavenger.info("one")
        scavenger.infow("two", "k")
        scavenger.infow("three", 1, 2, "dangling")

        assert len(scavenger) == 6

    def test_log_with_level_name(self, scavenger):
        scavenger.log("warning", "via name")

        assert scavenger.entries()[0].level is Level.WARN

    def test_log_with_invalid_level_raises(self, scavenger):
        with pytest.raises(InvalidLevelError):
            scavenger.log("FATAL", "nope")

        assert len(scavenger) == 0

    def test_level_always_enabled(self, scavenger):
        assert all(scavenger.level_enabled(level) for level in Level)

    def test_field_value_beyond_digit_limit_is_recorded(self, scavenger):
        scavenger.infow("msg", "n", 10 ** 5000)

        assert len(scavenger) == 1
        assert scavenger.entries()[0].message.startswith('msg\t{"n": <')

    def test_operand_with_broken_str_is_recorded(self, scavenger):
        class BrokenStr:
            def __str__(self):
                raise RuntimeError("broken __str__")

        scavenger.info("x", BrokenStr())

        assert len(scavenger) == 1
        assert scavenger.entries()[0].message.startswith("x<")

    def test_context_value_beyond_digit_limit(self, scavenger):
        child = scavenger.new_logger_with("n", 10 ** 5000)
        child.info("msg")

        assert scavenger.entries()[0].message.startswith('msg\t{"n": <')


class TestScavengerStore:
    """Test cases for store access."""

    def test_dump_format(self, populated_scavenger):
        assert populated_scavenger.dump() == (
            "INFO\tstarting\n"
            'WARN\thello\t{"foo": 100, "bar": "qux"}\n'
            "ERROR\tfailed after 3 attempts\n"
            "DEBUG\tdone\n"
        )

    def test_dump_empty(self, scavenger):
        assert scavenger.dump() == ""

    def test_entries_snapshot_isolation(self, scavenger):
        """Test a returned snapshot does not see later appends."""
        scavenger.info("first")
        snapshot = scavenger.entries()

        scavenger.info("second")
        snapshot.append(LogEntry(Level.INFO, "mine"))

        assert [e.message for e in snapshot] == ["first", "mine"]
        assert [e.message for e in scavenger.entries()] == ["first", "second"]

    def test_reset_clears_shared_store(self, scavenger):
        child = scavenger.new_logger_with("k", "v")
        child.info("hello")

        scavenger.reset()

        assert len(scavenger) == 0
        assert len(child) == 0

    def test_filter_is_independent(self):
        """Test filtering by level yields an independent Scavenger."""
        sc = Scavenger()
        sc.info("a")
        sc.error("b")
        sc.debug("c")
        sc.error("d")
        sc.warn("e")

        errors = sc.filter(lambda level, message: level is Level.ERROR)
        errors.info("added")

        assert len(errors) == 3
        assert len(sc) == 5
        assert [e.message for e in errors.entries()] == ["b", "d", "added"]

        sc.reset()
        assert len(errors) == 3

    def test_filter_none_keeps_everything(self, populated_scavenger):
        copy = populated_scavenger.filter(None)

        assert copy.entries() == populated_scavenger.entries()

    def test_entry_store_append_order(self):
        store = EntryStore()
        store.append(LogEntry(Level.INFO, "a"), LogEntry(Level.INFO, "b"))

        assert [e.message for e in store.snapshot()] == ["a", "b"]
        assert len(store) == 2


class TestScavengerDerivation:
    """Test cases for child loggers."""

    def test_child_fields_do_not_leak_to_parent(self, scavenger):
        child = scavenger.new_logger_with("k", "v")

        child.info("from child")
        scavenger.info("from parent")

        assert scavenger.entries() == child.entries()
        assert [e.message for e in scavenger.entries()] == [
            'from child\t{"k": "v"}',
            "from parent",
        ]

    def test_context_fields_are_sorted(self, scavenger):
        child = scavenger.new_logger_with("zeta", 1, "alpha", 2)

        child.infow("msg", "mid", 3)

        assert child.entries()[0].message == 'msg\t{"alpha": 2, "zeta": 1, "mid": 3}'

    def test_grandchild_overrides(self, scavenger):
        grandchild = scavenger.new_logger_with("a", 1).new_logger_with("a", 2, "b", 3)

        grandchild.info("x")

        assert scavenger.entries()[0].message == 'x\t{"a": 2, "b": 3}'

    def test_per_call_field_overrides_context(self, scavenger):
        child = scavenger.new_logger_with("a", 1, "b", 2)

        child.infow("x", "a", 10)

        assert child.entries()[0].message == 'x\t{"a": 10, "b": 2}'

    def test_malformed_derivation_records_diagnostic(self, scavenger):
        child = scavenger.new_logger_with("k", "v", "dangling")

        assert scavenger.dump() == 'ERROR\tIgnored key without a value.\t{"ignored": "dangling"}\n'
        assert child.fields.render() == '{"k": "v"}'

    def test_child_shares_printers(self):
        printer = Mock()
        root = Scavenger(printer)

        root.new_logger_with("k", 1).warn("hi")

        printer.print.assert_called_once_with(Level.WARN, 'hi\t{"k": 1}')


class TestScavengerPrinters:
    """Test cases for printer fan-out and flushing."""

    def test_printers_notified_in_order(self):
        first, second = Mock(), Mock()
        manager = Mock()
        manager.attach_mock(first, "first")
        manager.attach_mock(second, "second")
        sc = Scavenger(first, second)

        sc.debugw("msg", "onlykey")

        assert manager.mock_calls == [
            call.first.print(Level.ERROR, 'Ignored key without a value.\t{"ignored": "onlykey"}'),
            call.second.print(Level.ERROR, 'Ignored key without a value.\t{"ignored": "onlykey"}'),
            call.first.print(Level.DEBUG, "msg"),
            call.second.print(Level.DEBUG, "msg"),
        ]

    def test_printer_may_log_back(self):
        """Test a printer can log into the scavenger it observes."""
        sc = Scavenger()

        class Echo:
            def print(self, level, message):
                if message == "ping":
                    sc.info("pong")

        sc.printers = (Echo(),)
        sc.info("ping")

        assert [e.message for e in sc.entries()] == ["ping", "pong"]

    def test_printer_protocol(self):
        class Recorder:
            def print(self, level, message):
                pass

        assert isinstance(Recorder(), Printer)

    def test_flush_without_printers(self, scavenger):
        scavenger.flush()

    def test_flush_syncs_all_and_raises_first_error(self):
        first = Mock()
        first.sync.side_effect = OSError("first")
        second = Mock()
        second.sync.side_effect = OSError("second")
        third = Mock()
        sc = Scavenger(first, second, third)

        with pytest.raises(OSError, match="first"):
            sc.flush()

        first.sync.assert_called_once_with()
        second.sync.assert_called_once_with()
        third.sync.assert_called_once_with()

    def test_flush_skips_printers_without_sync(self):
        class PrintOnly:
            def print(self, level, message):
                pass

        Scavenger(PrintOnly()).flush()


class TestScavengerQueries:
    """Test cases for the convenience query methods."""

    def test_string_exists(self, populated_scavenger):
        assert populated_scavenger.string_exists("hello")
        assert not populated_scavenger.string_exists("absent")

    def test_unique_string_exists(self, populated_scavenger):
        assert populated_scavenger.unique_string_exists("starting")
        assert not populated_scavenger.unique_string_exists("t")
        assert not populated_scavenger.unique_string_exists("absent")

    def test_regexp_exists(self, populated_scavenger):
        assert populated_scavenger.regexp_exists(r"after \d+ attempts")
        assert populated_scavenger.unique_regexp_exists("^done$")

    def test_invalid_regexp_raises(self, populated_scavenger):
        with pytest.raises(InvalidPatternError):
            populated_scavenger.regexp_exists("(")

    def test_prefix_dispatch(self, populated_scavenger):
        assert populated_scavenger.exists("rex: ^hel+o")
        assert not populated_scavenger.exists("^hel+o")
        assert populated_scavenger.unique_exists("rex:qux")
        assert populated_scavenger.find("rex: ^d.*e$") == populated_scavenger.finder().find_regexp("^d.*e$")

    def test_find_sequences(self, populated_scavenger):
        assert populated_scavenger.find_string_sequence(["starting", "done"]).complete
        assert not populated_scavenger.find_string_sequence(["done", "starting"]).complete
        assert populated_scavenger.find_regexp_sequence(["^s", "^d"]).indices == [0, 3]
        assert populated_scavenger.find_sequence(["hello", "rex:attempts$"]).complete


class TestScavengerConcurrency:
    """Test cases for concurrent logging."""

    def test_concurrent_logging(self):
        """Test N threads logging M messages each yields N*M intact entries."""
        sc = Scavenger()
        threads_count, per_thread = 8, 200
        barrier = threading.Barrier(threads_count)

        def worker(n):
            log = sc.new_logger_with("worker", n)
            barrier.wait()
            for m in range(per_thread):
                log.infow(f"message {n}-{m}", "m", m)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(sc) == threads_count * per_thread
        messages = {e.message for e in sc.entries()}
        for n in range(threads_count):
            for m in range(per_thread):
                assert f'message {n}-{m}\t{{"worker": {n}, "m": {m}}}' in messages

    def test_per_thread_order_preserved(self):
        sc = Scavenger()

        def worker(n):
            for m in range(50):
                sc.info(f"t{n}:{m}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for n in range(4):
            mine = [e.message for e in sc.entries() if e.message.startswith(f"t{n}:")]
            assert mine == [f"t{n}:{m}" for m in range(50)]
