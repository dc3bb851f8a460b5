"""Pure fade computations used by the controller on every tick."""

from __future__ import annotations

import numpy as np

from .storage import Alarm


def volume_at(alarm: Alarm, elapsed: float) -> int:
    """Sound volume (percent) of an active alarm ``elapsed`` seconds after activation.

    Linear from ``volume_fade_in_start`` to ``volume_fade_in_end`` during the
    fade-in, ``volume_alarm_end`` afterwards. Without a fade-in the alarm
    starts directly at ``volume_fade_in_end``.
    """
    elapsed = max(0.0, float(elapsed))
    fade = alarm.fade_in_duration
    if fade <= 0:
        return alarm.volume_fade_in_end if elapsed == 0 else alarm.volume_alarm_end
    if elapsed >= fade:
        return alarm.volume_alarm_end
    value = np.interp(elapsed, [0.0, float(fade)], [alarm.volume_fade_in_start, alarm.volume_fade_in_end])
    return int(round(float(value)))


def brightness_at(alarm: Alarm, elapsed: float) -> float:
    target = float(alarm.light_dim_up_brightness)
    if alarm.light_dim_up_duration <= 0:
        return target
    return float(np.interp(max(0.0, float(elapsed)), [0.0, float(alarm.light_dim_up_duration)], [0.0, target]))


def ramp_value(start: float, target: float, duration: float, elapsed: float) -> float:
    if duration <= 0:
        return target
    return float(np.interp(max(0.0, float(elapsed)), [0.0, float(duration)], [start, target]))


def reminder_due(alarm: Alarm, elapsed: float, reminders_played: int) -> bool:
    """True if the next reminder (number ``reminders_played + 1``) is due."""
    interval = alarm.reminder_interval
    if interval <= 0 or elapsed >= alarm.duration:
        return False
    next_at = max(0, alarm.fade_in_duration) + (reminders_played + 1) * interval
    return elapsed >= next_at
