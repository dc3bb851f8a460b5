from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import time
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from .errors import ConcurrencyError, ErrorKind, PersistenceError, Result
from .notifications import ProcessingQueue
from .sounds import Sound
from .storage import Alarm, load_alarms, save_alarms

logger = logging.getLogger(__name__)


class AlarmStore:
    """Registry of all alarms, the alarm template and the sound catalog.

    Every mutation holds the store lock. Alarm fields are changed only
    between ``begin_transaction`` and ``commit``; a commit saves the whole
    list and notifies the controller through the processing queue.
    """

    def __init__(
        self,
        storage_path: Optional[Path],
        template: Alarm,
        sounds: Optional[List[Sound]] = None,
        queue: Optional[ProcessingQueue[Alarm]] = None,
    ):
        self.storage_path = storage_path
        self.template = template
        self.sounds: List[Sound] = list(sounds or [])
        self.queue: ProcessingQueue[Alarm] = queue or ProcessingQueue()

        self._alarms: List[Alarm] = []
        self._lock = threading.RLock()
        self._tx_owner: Optional[int] = None
        self._tx_alarm: Optional[Alarm] = None
        self._tx_snapshot: Optional[Alarm] = None

    def load_all(self) -> None:
        alarms = load_alarms(self.storage_path, self.template) if self.storage_path else []
        with self._lock:
            self._alarms = alarms
        logger.info("Loaded %s alarms from %s", len(alarms), self.storage_path)

    def create(
        self,
        week_days: Iterable[int],
        at: time,
        sound_id: Optional[int],
        one_time_only: bool = False,
        light_ids: Optional[Iterable[int]] = None,
    ) -> int:
        with self._lock:
            self._check_no_transaction()
            alarm = self.template.clone()
            alarm.id = max((a.id for a in self._alarms), default=0) + 1
            alarm.enabled = True
            alarm.week_days = frozenset(week_days)
            alarm.time = at
            alarm.sound_id = sound_id
            alarm.one_time_only = one_time_only
            alarm.light_ids = list(light_ids or [])
            self._alarms.append(alarm)
            self._persist()
        self.queue.enqueue(alarm)
        logger.info("Created and stored alarm with ID=%s", alarm.id)
        return alarm.id

    def get(self, alarm_id: int) -> Optional[Alarm]:
        with self._lock:
            for alarm in self._alarms:
                if alarm.id == alarm_id:
                    return alarm
        return None

    def list(self) -> List[Alarm]:
        with self._lock:
            return list(self._alarms)

    def contains(self, alarm: Alarm) -> bool:
        with self._lock:
            return any(a is alarm for a in self._alarms)

    def remove(self, alarm: Alarm) -> bool:
        with self._lock:
            self._check_no_transaction()
            before = len(self._alarms)
            self._alarms = [a for a in self._alarms if a is not alarm]
            removed = len(self._alarms) != before
            if removed:
                self._persist()
        if removed:
            self.queue.enqueue(alarm)
            logger.info("Removed alarm %s", alarm.id)
        return removed

    def add_alarm_to_process(self, alarm: Alarm) -> None:
        self.queue.enqueue(alarm)

    def begin_transaction(self, alarm: Alarm) -> None:
        if self._tx_owner == threading.get_ident():
            open_id = self._tx_alarm.id if self._tx_alarm else None
            logger.critical("Transaction for alarm %s opened while alarm %s is still open", alarm.id, open_id)
            raise ConcurrencyError("A transaction is already open")
        self._lock.acquire()
        self._tx_owner = threading.get_ident()
        self._tx_alarm = alarm
        self._tx_snapshot = alarm.clone()

    def commit(self) -> None:
        alarm = self._end_transaction()
        self._tx_snapshot = None
        try:
            with self._lock:
                if any(a is alarm for a in self._alarms):
                    self._persist()
        finally:
            self._lock.release()
        self.queue.enqueue(alarm)

    def rollback(self) -> None:
        alarm = self._end_transaction()
        snapshot = self._tx_snapshot
        self._tx_snapshot = None
        try:
            if snapshot is not None:
                alarm.copy_schedule_from(snapshot)
                alarm.apply_template(snapshot)
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self, alarm: Alarm) -> Iterator[Alarm]:
        self.begin_transaction(alarm)
        try:
            yield alarm
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def update_alarm(self, alarm_id: int, changes: Alarm) -> Result:
        """Replace the schedule fields of a stored alarm with those of ``changes``."""
        alarm = self.get(alarm_id)
        if alarm is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"unknown alarm id {alarm_id}")
        error = self.validate(changes)
        if error:
            return Result.failure(ErrorKind.VALIDATION, error)
        with self.transaction(alarm):
            alarm.copy_schedule_from(changes)
        return Result.success(alarm)

    def validate(self, alarm: Alarm) -> Optional[str]:
        if alarm.sound_id is not None and not 0 <= alarm.sound_id < len(self.sounds):
            return f"invalid sound id {alarm.sound_id}"
        if not alarm.week_days and not alarm.one_time_only:
            return "a recurring alarm needs at least one week day"
        for name in ("volume_fade_in_start", "volume_fade_in_end", "volume_alarm_end", "light_dim_up_brightness"):
            value = getattr(alarm, name)
            if not 0 <= value <= 100:
                return f"{name} out of range (0...100)"
        return None

    def get_sound(self, sound_id: Optional[int]) -> Optional[Sound]:
        if sound_id is not None and 0 <= sound_id < len(self.sounds):
            return self.sounds[sound_id]
        if sound_id is not None:
            logger.error("Invalid sound id: %s", sound_id)
        return None

    def _end_transaction(self) -> Alarm:
        if self._tx_owner != threading.get_ident() or self._tx_alarm is None:
            raise ConcurrencyError("No transaction open in this thread")
        alarm = self._tx_alarm
        self._tx_owner = None
        self._tx_alarm = None
        return alarm

    def _check_no_transaction(self) -> None:
        if self._tx_owner == threading.get_ident():
            raise ConcurrencyError("Store mutation while a transaction is open")

    def _persist(self) -> None:
        if self.storage_path is None:
            return
        try:
            save_alarms(self.storage_path, self._alarms)
        except PersistenceError as exc:
            logger.error("%s (in-memory state is kept)", exc)
