import signal

import pytest

from pae.process_tracker import KILL_SIGNAL, ProcessTracker, signal_process


def make_process(mocker, pid=100, alive=True):
    process = mocker.Mock()
    process.pid = pid
    process.poll.return_value = None if alive else 0
    return process


class TestProcessTrackerUnit:
    def test_register_and_unregister(self, mocker):
        tracker = ProcessTracker()
        process = make_process(mocker)

        task_id = tracker.register(process)
        assert task_id == "proc-1"
        assert tracker.get(task_id) is process
        assert len(tracker) == 1

        tracker.unregister(task_id)
        assert tracker.get(task_id) is None
        assert len(tracker) == 0

    def test_register_with_explicit_id(self, mocker):
        tracker = ProcessTracker()
        assert tracker.register(make_process(mocker), "task-7") == "task-7"

    def test_ids_are_unique(self):
        tracker = ProcessTracker()
        assert tracker.next_id() != tracker.next_id()

    def test_live_skips_exited_processes(self, mocker):
        tracker = ProcessTracker()
        alive = make_process(mocker, 1)
        tracker.register(alive)
        tracker.register(make_process(mocker, 2, alive=False))
        assert tracker.live() == [alive]

    def test_signal_all(self, mocker):
        tracker = ProcessTracker()
        first = make_process(mocker, 1)
        second = make_process(mocker, 2)
        second.send_signal.side_effect = ProcessLookupError
        tracker.register(first)
        tracker.register(second)

        assert tracker.signal_all(signal.SIGTERM) == 1
        first.send_signal.assert_called_once_with(signal.SIGTERM)

    def test_terminate_and_kill_all(self, mocker):
        tracker = ProcessTracker()
        process = make_process(mocker)
        tracker.register(process)

        assert tracker.terminate_all() == 1
        assert tracker.kill_all() == 1
        assert process.send_signal.call_args_list == [
            mocker.call(signal.SIGTERM),
            mocker.call(KILL_SIGNAL),
        ]

    def test_stop_all_escalates_to_kill(self, mocker):
        tracker = ProcessTracker()
        process = make_process(mocker)
        tracker.register(process)

        assert tracker.stop_all(grace_ms=0) == 1
        assert process.send_signal.call_args_list == [
            mocker.call(signal.SIGTERM),
            mocker.call(KILL_SIGNAL),
        ]

    def test_stop_all_spares_children_that_exit(self, mocker):
        tracker = ProcessTracker()
        process = make_process(mocker)
        process.poll.side_effect = [None] + [0] * 5
        tracker.register(process)

        assert tracker.stop_all(grace_ms=1000) == 1
        process.send_signal.assert_called_once_with(signal.SIGTERM)

    def test_stop_all_without_children(self):
        assert ProcessTracker().stop_all() == 0

    def test_group_leaders_are_signalled_as_a_group(self, mocker):
        mocker.patch("pae.process_tracker.USE_PROCESS_GROUPS", True)
        killpg = mocker.patch("pae.process_tracker.os.killpg", create=True)
        tracker = ProcessTracker()
        leader = make_process(mocker, 41)
        single = make_process(mocker, 42)
        task_id = tracker.register(leader, group=True)
        tracker.register(single)

        assert tracker.is_group(task_id)
        assert tracker.signal_all(signal.SIGTERM) == 2
        killpg.assert_called_once_with(41, signal.SIGTERM)
        leader.send_signal.assert_not_called()
        single.send_signal.assert_called_once_with(signal.SIGTERM)

        tracker.unregister(task_id)
        assert not tracker.is_group(task_id)

    def test_signal_process_reports_vanished_group(self, mocker):
        mocker.patch("pae.process_tracker.USE_PROCESS_GROUPS", True)
        mocker.patch(
            "pae.process_tracker.os.killpg", side_effect=ProcessLookupError, create=True
        )
        assert signal_process(make_process(mocker), signal.SIGTERM, group=True) is False

    def test_signal_process_without_group_support(self, mocker):
        mocker.patch("pae.process_tracker.USE_PROCESS_GROUPS", False)
        process = make_process(mocker)
        assert signal_process(process, signal.SIGTERM, group=True) is True
        process.send_signal.assert_called_once_with(signal.SIGTERM)


class TestSignalForwardingUnit:
    def test_install_and_restore(self):
        tracker = ProcessTracker()
        original = signal.getsignal(signal.SIGTERM)
        tracker.install_signal_handlers()
        try:
            assert signal.getsignal(signal.SIGTERM) == tracker._forward
        finally:
            tracker.restore_signal_handlers()
        assert signal.getsignal(signal.SIGTERM) == original

    def test_forward_calls_previous_handler(self, mocker):
        tracker = ProcessTracker()
        process = make_process(mocker)
        tracker.register(process)
        previous = mocker.Mock()
        tracker._previous_handlers[signal.SIGINT] = previous

        tracker._forward(signal.SIGINT, None)

        process.send_signal.assert_called_once_with(signal.SIGINT)
        previous.assert_called_once_with(signal.SIGINT, None)

    def test_forward_sigint_without_handler(self):
        tracker = ProcessTracker()
        tracker._previous_handlers[signal.SIGINT] = signal.SIG_DFL
        with pytest.raises(KeyboardInterrupt):
            tracker._forward(signal.SIGINT, None)

    def test_forward_sigterm_exits(self):
        tracker = ProcessTracker()
        with pytest.raises(SystemExit) as exc_info:
            tracker._forward(signal.SIGTERM, None)
        assert exc_info.value.code == 128 + signal.SIGTERM
