import pytest

from alarms.fade import brightness_at, ramp_value, reminder_due, volume_at
from alarms.storage import Alarm


def test_volume_fades_in_linearly():
    alarm = Alarm(fade_in_duration=300, volume_fade_in_start=10, volume_fade_in_end=60, volume_alarm_end=70)
    assert volume_at(alarm, 0) == 10
    assert volume_at(alarm, 150) == 35
    assert volume_at(alarm, 299) == 60
    assert volume_at(alarm, 300) == 70
    assert volume_at(alarm, 1000) == 70


def test_volume_without_fade_in():
    alarm = Alarm(fade_in_duration=0, volume_fade_in_end=60, volume_alarm_end=70)
    assert volume_at(alarm, 0) == 60
    assert volume_at(alarm, 1) == 70


def test_fade_longer_than_duration_stays_in_range():
    alarm = Alarm(fade_in_duration=3000, duration=1800, volume_fade_in_start=10, volume_fade_in_end=60)
    assert 10 <= volume_at(alarm, 1799) <= 60


def test_brightness_ramps_to_target():
    alarm = Alarm(light_dim_up_duration=600, light_dim_up_brightness=50)
    assert brightness_at(alarm, 0) == 0
    assert brightness_at(alarm, 100) == pytest.approx(50 * 100 / 600)
    assert brightness_at(alarm, 600) == 50
    assert brightness_at(alarm, 900) == 50


def test_brightness_without_dim_up():
    alarm = Alarm(light_dim_up_duration=0, light_dim_up_brightness=30)
    assert brightness_at(alarm, 0) == 30


def test_ramp_value():
    assert ramp_value(20, 100, 400, 200) == pytest.approx(60)
    assert ramp_value(20, 100, 0, 0) == 100


def test_reminders_follow_fade_in():
    alarm = Alarm(fade_in_duration=300, reminder_interval=300, duration=1800)
    assert not reminder_due(alarm, 599, 0)
    assert reminder_due(alarm, 600, 0)
    assert not reminder_due(alarm, 600, 1)
    assert reminder_due(alarm, 900, 1)
    assert not reminder_due(alarm, 1800, 4)
    assert not reminder_due(Alarm(reminder_interval=0), 1000, 0)
