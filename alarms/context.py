from __future__ import annotations

import logging
from datetime import time
from typing import Iterable, List, Optional

from .controller import AlarmController
from .errors import ErrorKind, Result
from .lights import LightControl
from .sounds import Sound
from .storage import Alarm
from .store import AlarmStore

logger = logging.getLogger(__name__)


class CalendarSource:
    """Calendar collaborator used by the ``calendar`` protocol command."""

    def get_authorization_url(self) -> Optional[str]:
        raise NotImplementedError

    def set_authorization_code(self, code: str) -> bool:
        raise NotImplementedError

    def get_entries_today(self) -> List[str]:
        raise NotImplementedError


class AlarmContext:
    """Everything the remote adapters may use, built once at startup."""

    def __init__(
        self,
        name: str,
        store: AlarmStore,
        controller: AlarmController,
        calendar: Optional[CalendarSource] = None,
    ):
        self.name = name
        self.store = store
        self.controller = controller
        self.calendar = calendar

    def create_alarm(
        self,
        week_days: Iterable[int],
        at: time,
        sound_id: Optional[int],
        one_time_only: bool = False,
    ) -> Result:
        days = frozenset(week_days)
        if not days and not one_time_only:
            return Result.failure(ErrorKind.VALIDATION, "a recurring alarm needs at least one week day")
        if sound_id is not None and self.store.get_sound(sound_id) is None:
            return Result.failure(ErrorKind.VALIDATION, f"invalid sound id {sound_id}")
        return Result.success(self.store.create(days, at, sound_id, one_time_only=one_time_only))

    def get_alarm(self, alarm_id: int) -> Optional[Alarm]:
        return self.store.get(alarm_id)

    def list_alarms(self) -> List[Alarm]:
        return self.store.list()

    def remove_alarm_from_list(self, alarm: Alarm) -> bool:
        return self.store.remove(alarm)

    def add_alarm_to_process(self, alarm: Alarm) -> None:
        self.store.add_alarm_to_process(alarm)

    def set_sound_timer(self, seconds: int) -> None:
        self.controller.set_sound_timer(seconds)

    def delete_sound_timer(self) -> None:
        self.controller.delete_sound_timer()

    def get_sound_timer(self) -> int:
        return self.controller.get_sound_timer()

    def all_off(self, disable_alarms: bool = False) -> None:
        self.controller.all_off(disable_alarms)

    def stop_active_alarm(self) -> None:
        self.controller.stop_active_alarm()

    def snooze(self, minutes: Optional[int] = None) -> None:
        self.controller.snooze(minutes)

    def get_light_control_list(self) -> List[LightControl]:
        return self.controller.get_light_control_list()

    def get_sound_list(self) -> List[Sound]:
        return list(self.store.sounds)

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "alarms": [alarm.to_dict() for alarm in self.store.list()],
            "lights": [
                {"id": light.id, "name": light.name, "brightness": int(round(light.brightness))}
                for light in self.get_light_control_list()
            ],
        }
