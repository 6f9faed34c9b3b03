"""The observer process: creates the shared segment and watches every module."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from contextlib import ExitStack

from .shm import (
    SHM_COUNTER_MAX,
    SHM_NAME,
    SHM_SIZE,
    ModuleStatus,
    SharedSegment,
)

ROS_OBSERVE_MONITOR_RATE = 100.0
POLLING_INTERVAL_MSEC = int(1000.0 / ROS_OBSERVE_MONITOR_RATE)
POLLING_INTERVAL_SEC = POLLING_INTERVAL_MSEC / 1000.0
SHM_TH_COUNTER_RO = 10

OBSERVER_MODULE = "RosObserver"
STOP_REQUEST_MODULE = "DRStopRequest"
WATCHED_MODULES = (
    ("HealthAggregator", "Health Aggregator"),
    ("EmergencyHandler", "Emergency Handler"),
    ("TwistGate", "Twist Gate"),
    ("YMC_VehicleDriver", "YMC Vehicle Driver"),
    ("AS_VehicleDriver", "AS Vehicle Driver"),
)


def _local_time() -> str:
    return time.strftime("%c", time.localtime())


class RosObserver:
    """Owns the shared segment and advances the watched modules' counters."""

    def __init__(self, segment_name: str = SHM_NAME) -> None:
        self.segment_name = segment_name
        SharedSegment.remove(segment_name)
        self._segment = SharedSegment.create(segment_name, SHM_SIZE)
        self._closed = False

        self._own_counter = self._segment.construct_counter(f"SHM_{OBSERVER_MODULE}")
        self._watched = [
            (label, self._segment.construct_counter(f"SHM_{module}"))
            for module, label in WATCHED_MODULES
        ]
        self._stop_request = self._segment.construct_flag(f"SHM_{STOP_REQUEST_MODULE}")

        own_mutex = self._segment.construct_mutex(f"MUT_{OBSERVER_MODULE}")
        self._mutexes = [own_mutex]
        self._mutexes.extend(
            self._segment.construct_mutex(f"MUT_{module}") for module, _ in WATCHED_MODULES
        )
        self._mutexes.append(self._segment.construct_mutex(f"MUT_{STOP_REQUEST_MODULE}"))

        with own_mutex:
            self._own_counter.activated = True
            self._own_counter.thresh = POLLING_INTERVAL_MSEC * SHM_TH_COUNTER_RO
            self._own_counter.value = 0

        self._error_detected_prev = False

    def step(self) -> str | None:
        """Run one polling cycle; return the label of the failing module, if any."""
        with ExitStack() as stack:
            for mutex in self._mutexes:
                stack.enter_context(mutex)

            self._own_counter.value = 0
            for _, counter in self._watched:
                counter.value = (
                    min(counter.value + POLLING_INTERVAL_MSEC, SHM_COUNTER_MAX)
                    if counter.activated
                    else 0
                )

            error_node = None
            for label, counter in self._watched:
                if counter.value > counter.thresh:
                    error_node = label

            health = self._watched[0][1]
            if error_node is not None:
                health.modstatus = ModuleStatus.ERROR_DETECTED
                if not self._error_detected_prev:
                    self._stop_request.value = True
                print(f"[START][TIME][LOCAL: {_local_time()}][{error_node}]", file=sys.stderr)
            else:
                health.modstatus = ModuleStatus.NORMAL
                if self._error_detected_prev:
                    self._stop_request.value = False
            self._error_detected_prev = error_node is not None
        return error_node

    def run(self, stop_event: threading.Event) -> None:
        """Poll until the event is set."""
        while not stop_event.is_set():
            self.step()
            stop_event.wait(POLLING_INTERVAL_SEC)

    def close(self) -> None:
        """Unmap and remove the shared segment."""
        if self._closed:
            return
        self._closed = True
        self._segment.close()
        SharedSegment.remove(self.segment_name)

    def __enter__(self) -> RosObserver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="ndtwatch-observer",
        description="Create the vital-monitor segment and watch the registered modules.",
    )
    parser.add_argument("--segment", default=SHM_NAME, help="shared segment name")
    args = parser.parse_args(argv)

    stop_event = threading.Event()

    def _request_stop(signum: int, frame: object) -> None:
        stop_event.set()

    for signame in ("SIGUSR1", "SIGTERM", "SIGINT", "SIGQUIT"):
        signum = getattr(signal, signame, None)
        try:
            if signum is None:
                raise ValueError(signame)
            signal.signal(signum, _request_stop)
        except (ValueError, OSError):
            print(f"[INFO][Cannot catch {signame}]")

    print(f"[START][TIME][LOCAL: {_local_time()}]", flush=True)
    with RosObserver(args.segment) as observer:
        observer.run(stop_event)
    return 0


if __name__ == "__main__":
    sys.exit(main())