"""Tests for the O_EXCL instance lock, in-process and across processes."""

import subprocess
import sys
import textwrap

import pytest

from locket.lock import AlreadyLockedError, InstanceLock, LockMissingError, default_lock_path

_CHILD = textwrap.dedent("""
    import sys
    from locket.lock import AlreadyLockedError, InstanceLock
    lock = InstanceLock(sys.argv[1])
    try:
        lock.acquire()
    except AlreadyLockedError:
        sys.exit(3)
    lock.release()
    sys.exit(0)
""")


def _child_acquire(path) -> int:
    result = subprocess.run(
        [sys.executable, "-c", _CHILD, str(path)],
        capture_output=True,
        check=False,
        timeout=60,
    )
    return result.returncode


class TestInstanceLock:
    def test_acquire_creates_empty_marker(self, lock_path):
        lock = InstanceLock(lock_path).acquire()
        assert lock.locked
        assert lock_path.exists()
        assert lock_path.stat().st_size == 0
        lock.release()
        assert not lock_path.exists()
        assert not lock.locked

    def test_second_instance_is_refused(self, lock_path):
        first = InstanceLock(lock_path).acquire()
        with pytest.raises(AlreadyLockedError):
            InstanceLock(lock_path).acquire()
        first.release()
        InstanceLock(lock_path).acquire().release()

    def test_existing_marker_is_not_touched(self, lock_path):
        lock_path.write_text("")
        with pytest.raises(AlreadyLockedError):
            InstanceLock(lock_path).acquire()
        assert lock_path.exists()

    def test_other_io_errors_are_not_already_locked(self, tmp_path):
        lock = InstanceLock(tmp_path / "no-such-dir" / "locket.lck")
        with pytest.raises(OSError) as excinfo:
            lock.acquire()
        assert not isinstance(excinfo.value, AlreadyLockedError)
        assert not lock.locked

    def test_release_reports_missing_marker(self, lock_path):
        lock = InstanceLock(lock_path).acquire()
        lock_path.unlink()
        with pytest.raises(LockMissingError):
            lock.release()

    def test_release_without_acquire(self, lock_path):
        with pytest.raises(RuntimeError):
            InstanceLock(lock_path).release()

    def test_double_acquire_in_one_instance(self, lock_path):
        lock = InstanceLock(lock_path).acquire()
        with pytest.raises(RuntimeError):
            lock.acquire()
        lock.release()

    def test_context_manager(self, lock_path):
        with InstanceLock(lock_path) as lock:
            assert lock.locked
            assert lock_path.exists()
        assert not lock_path.exists()

    def test_default_path_is_in_tempdir(self):
        import tempfile
        from pathlib import Path

        assert default_lock_path().parent == Path(tempfile.gettempdir())
        assert InstanceLock().path == default_lock_path()


class TestCrossProcess:
    def test_other_process_is_refused_while_held(self, lock_path):
        with InstanceLock(lock_path):
            assert _child_acquire(lock_path) == 3
        assert _child_acquire(lock_path) == 0
        assert not lock_path.exists()
