import threading

import pytest

from ndtwatch import shm
from ndtwatch.observer import (
    POLLING_INTERVAL_MSEC,
    SHM_TH_COUNTER_RO,
    RosObserver,
)
from ndtwatch.shm import SHM_COUNTER_MAX, ModuleStatus, SegmentError, SharedSegment

NAME = "ObserverSegment"


@pytest.fixture(autouse=True)
def isolated_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(shm, "SEGMENT_DIR", tmp_path)
    return tmp_path


@pytest.fixture
def observer():
    obs = RosObserver(NAME)
    yield obs
    obs.close()


def test_observer_counter_initialised(observer):
    with SharedSegment.open(NAME) as segment:
        own = segment.find_counter("SHM_RosObserver")
        assert own.activated is True
        assert own.thresh == POLLING_INTERVAL_MSEC * SHM_TH_COUNTER_RO
        assert own.value == 0
        assert segment.find_flag("SHM_DRStopRequest").value is False


def test_idle_step_reports_nothing(observer):
    assert observer.step() is None
    with SharedSegment.open(NAME) as segment:
        assert segment.find_flag("SHM_DRStopRequest").value is False
        assert segment.find_counter("SHM_TwistGate").value == 0


def test_activated_counter_advances_and_saturates(observer):
    with SharedSegment.open(NAME) as segment:
        counter = segment.find_counter("SHM_TwistGate")
        counter.activated = True
        counter.thresh = SHM_COUNTER_MAX
        observer.step()
        assert counter.value == POLLING_INTERVAL_MSEC
        counter.value = SHM_COUNTER_MAX
        observer.step()
        assert counter.value == SHM_COUNTER_MAX


def test_error_sets_stop_request_once(observer):
    with SharedSegment.open(NAME) as segment:
        health = segment.find_counter("SHM_HealthAggregator")
        flag = segment.find_flag("SHM_DRStopRequest")
        health.activated = True
        health.thresh = POLLING_INTERVAL_MSEC
        health.value = POLLING_INTERVAL_MSEC

        assert observer.step() == "Health Aggregator"
        assert health.modstatus is ModuleStatus.ERROR_DETECTED
        assert flag.value is True

        flag.value = False
        assert observer.step() == "Health Aggregator"
        assert flag.value is False

        flag.value = True
        health.activated = False
        assert observer.step() is None
        assert health.modstatus is ModuleStatus.NORMAL
        assert flag.value is False


def test_last_failing_module_is_reported(observer):
    with SharedSegment.open(NAME) as segment:
        for module in ("HealthAggregator", "AS_VehicleDriver"):
            counter = segment.find_counter(f"SHM_{module}")
            counter.activated = True
            counter.value = SHM_COUNTER_MAX - POLLING_INTERVAL_MSEC
        assert observer.step() == "AS Vehicle Driver"
        health = segment.find_counter("SHM_HealthAggregator")
        assert health.modstatus is ModuleStatus.ERROR_DETECTED


def test_run_stops_on_event(observer):
    stop = threading.Event()
    with SharedSegment.open(NAME) as segment:
        counter = segment.find_counter("SHM_EmergencyHandler")
        counter.activated = True
        counter.thresh = SHM_COUNTER_MAX
        worker = threading.Thread(target=observer.run, args=(stop,))
        worker.start()
        stop.wait(0.1)
        stop.set()
        worker.join(timeout=5)
        assert not worker.is_alive()
        assert counter.value >= POLLING_INTERVAL_MSEC


def test_close_removes_segment():
    obs = RosObserver(NAME)
    obs.close()
    obs.close()
    with pytest.raises(SegmentError):
        SharedSegment.open(NAME)


def test_new_observer_replaces_stale_segment():
    with SharedSegment.create(NAME, 8192) as stale:
        stale.construct_counter("SHM_Stale")
    with RosObserver(NAME):
        with SharedSegment.open(NAME) as segment:
            with pytest.raises(SegmentError):
                segment.find_counter("SHM_Stale")
            assert segment.find_counter("SHM_RosObserver").activated is True