"""Clients that report or watch module liveness through the shared segment."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum, auto

from .shm import (
    SHM_COUNTER_MAX,
    SHM_NAME,
    SHM_TH_COUNTER,
    ModuleStatus,
    SegmentError,
    SharedSegment,
    StopFlag,
    VitalCounter,
)

_log = logging.getLogger(__name__)


class VitalMonitorMode(Enum):
    CNT_CLEAR = auto()
    CNT_MON = auto()


class ShmVitalMonitor:
    """Clears (heartbeat) or advances (watchdog) one module's vital counter."""

    def __init__(
        self,
        mod_name: str,
        loop_rate: float,
        mode: VitalMonitorMode = VitalMonitorMode.CNT_CLEAR,
        segment_name: str = SHM_NAME,
    ) -> None:
        if loop_rate <= 0:
            raise ValueError(f"loop rate must be positive, got {loop_rate}")
        self.name = mod_name
        self.shm_name = f"SHM_{mod_name}"
        self.mut_name = f"MUT_{mod_name}"
        self.mode = mode
        self.segment_name = segment_name
        self.is_opened = False
        self.polling_interval_msec = int(1000.0 / loop_rate)

    @contextmanager
    def _locked_counter(self) -> Iterator[VitalCounter]:
        with SharedSegment.open(self.segment_name) as segment:
            counter = segment.find_counter(self.shm_name)
            with segment.find_mutex(self.mut_name):
                yield counter

    def run(self) -> None:
        """Perform one cycle: connect if needed, otherwise update the counter."""
        if self.is_opened:
            self.update_vital_counter()
        else:
            self.is_opened = self.attempt_to_open()
            if self.is_opened:
                self.init_vital_counter()

    def init_vital_counter(self) -> None:
        if self.mode is not VitalMonitorMode.CNT_CLEAR:
            return
        try:
            with self._locked_counter() as counter:
                counter.activated = True
                counter.thresh = self.polling_interval_msec * SHM_TH_COUNTER
                counter.value = 0
        except SegmentError:
            _log.info("Failed to connect shared memory")

    def update_vital_counter(self) -> None:
        try:
            with self._locked_counter() as counter:
                if self.mode is VitalMonitorMode.CNT_CLEAR:
                    counter.value = 0
                elif self.mode is VitalMonitorMode.CNT_MON:
                    counter.value = (
                        min(counter.value + self.polling_interval_msec, SHM_COUNTER_MAX)
                        if counter.activated
                        else 0
                    )
                    counter.modstatus = (
                        ModuleStatus.ERROR_DETECTED
                        if counter.value > counter.thresh
                        else ModuleStatus.NORMAL
                    )
        except SegmentError:
            _log.info("Failed to connect shared memory")

    def attempt_to_open(self) -> bool:
        try:
            with SharedSegment.open(self.segment_name) as segment:
                segment.find_counter(self.shm_name)
                segment.find_mutex(self.mut_name)
        except SegmentError:
            return False
        return True

    def is_error_detected(self) -> bool:
        """Report the module status; a lost connection counts as an error."""
        if not self.is_opened:
            self.is_opened = self.attempt_to_open()
            return False
        try:
            with self._locked_counter() as counter:
                return counter.modstatus is ModuleStatus.ERROR_DETECTED
        except SegmentError:
            return True


class ShmDRStopRequest:
    """Reads and clears the shared stop request addressed to the vehicle driver."""

    def __init__(self, segment_name: str = SHM_NAME) -> None:
        self.is_opened = False
        self.name = "DRStopRequest"
        self.shm_name = f"SHM_{self.name}"
        self.mut_name = f"MUT_{self.name}"
        self.segment_name = segment_name

    @contextmanager
    def _locked_flag(self) -> Iterator[StopFlag]:
        with SharedSegment.open(self.segment_name) as segment:
            flag = segment.find_flag(self.shm_name)
            with segment.find_mutex(self.mut_name):
                yield flag

    def is_request_received(self) -> bool:
        if not self.is_opened:
            self.is_opened = self.attempt_to_open()
            return False
        try:
            with self._locked_flag() as flag:
                return flag.value
        except SegmentError:
            _log.info("Failed to connect shared memory")
            return False

    def clear_request(self) -> None:
        if not self.is_opened:
            self.is_opened = self.attempt_to_open()
            return
        try:
            with self._locked_flag() as flag:
                flag.value = False
        except SegmentError:
            _log.info("Failed to connect shared memory")

    def attempt_to_open(self) -> bool:
        try:
            with SharedSegment.open(self.segment_name) as segment:
                segment.find_flag(self.shm_name)
                segment.find_mutex(self.mut_name)
        except SegmentError:
            return False
        return True