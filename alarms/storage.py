from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional

from time_utils import format_time_of_day, format_weekdays, parse_time_of_day, parse_weekdays

from .errors import PersistenceError

logger = logging.getLogger(__name__)


class AlarmPhase(Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    STOPPED = "stopped"


# fields that belong to the schedule and are persisted / exported
SCHEDULE_FIELDS = ("enabled", "one_time_only", "skip_once", "time", "week_days", "sound_id", "light_ids")

# fields taken from the configured template
TEMPLATE_FIELDS = (
    "greeting",
    "fade_in_duration",
    "duration",
    "reminder_interval",
    "volume_fade_in_start",
    "volume_fade_in_end",
    "volume_alarm_end",
    "light_dim_up_duration",
    "light_dim_up_brightness",
    "sound",
)


@dataclass
class Alarm:
    id: int = 0
    enabled: bool = True
    one_time_only: bool = False
    skip_once: bool = False
    time: time = field(default_factory=lambda: parse_time_of_day("07:00"))
    week_days: FrozenSet[int] = frozenset()
    sound_id: Optional[int] = None
    light_ids: List[int] = field(default_factory=list)

    greeting: str = ""
    fade_in_duration: int = 300
    duration: int = 1800
    reminder_interval: int = 300
    volume_fade_in_start: int = 10
    volume_fade_in_end: int = 60
    volume_alarm_end: int = 70
    light_dim_up_duration: int = 600
    light_dim_up_brightness: int = 50
    sound: str = "data/alarm.wav"

    # runtime only, written by the controller thread
    phase: AlarmPhase = AlarmPhase.SCHEDULED
    activated_at: Optional[datetime] = None

    def clone(self) -> "Alarm":
        return copy.deepcopy(self)

    def apply_template(self, template: "Alarm") -> None:
        for name in TEMPLATE_FIELDS:
            setattr(self, name, copy.deepcopy(getattr(template, name)))

    def copy_schedule_from(self, other: "Alarm") -> None:
        for name in SCHEDULE_FIELDS:
            setattr(self, name, copy.deepcopy(getattr(other, name)))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "enabled": self.enabled,
            "oneTimeOnly": self.one_time_only,
            "skipOnce": self.skip_once,
            "time": format_time_of_day(self.time),
            "weekDays": format_weekdays(self.week_days),
            "soundId": self.sound_id,
            "lightIds": list(self.light_ids),
        }

    @classmethod
    def from_dict(cls, data: dict, template: Optional["Alarm"] = None) -> "Alarm":
        if "time" not in data:
            raise ValueError("Alarm payload missing time field")
        alarm = template.clone() if template else cls()
        alarm.phase = AlarmPhase.SCHEDULED
        alarm.activated_at = None
        alarm.id = int(data.get("id") or 0)
        alarm.enabled = bool(data.get("enabled", True))
        alarm.one_time_only = bool(data.get("oneTimeOnly", False))
        alarm.skip_once = bool(data.get("skipOnce", False))
        alarm.time = parse_time_of_day(str(data["time"]))
        alarm.week_days = parse_weekdays(data.get("weekDays"))
        sound_id = data.get("soundId")
        alarm.sound_id = int(sound_id) if sound_id is not None else None
        alarm.light_ids = [int(i) for i in data.get("lightIds") or []]
        return alarm


def load_alarms(path: Path, template: Optional[Alarm] = None) -> List[Alarm]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except Exception as exc:
        logger.error("Failed to load alarms from %s: %s", path, exc)
        return []
    alarms: List[Alarm] = []
    seen = set()
    for item in payload or []:
        try:
            alarm = Alarm.from_dict(item, template)
        except Exception as exc:
            logger.warning("Skipping alarm item due to parse error: %s", exc)
            continue
        if alarm.id <= 0 or alarm.id in seen:
            logger.warning("Skipping alarm item with invalid or duplicate id %s", alarm.id)
            continue
        seen.add(alarm.id)
        alarms.append(alarm)
    return alarms


def save_alarms(path: Path, alarms: List[Alarm]) -> None:
    serializable = [a.to_dict() for a in alarms]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(serializable, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)
    except OSError as exc:
        raise PersistenceError(f"Unable to save alarms to {path}: {exc}") from exc
