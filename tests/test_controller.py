from datetime import timedelta

import pytest

from alarms.controller import AlarmController
from alarms.storage import AlarmPhase
from time_utils import parse_time_of_day

from conftest import MONDAY, FakeLight, FakeSound, at


def _monday_alarm(store, one_time_only=False, sound_id=0):
    alarm_id = store.create({0}, parse_time_of_day("07:00"), sound_id, one_time_only=one_time_only)
    return store.get(alarm_id)


def _ring(controller, store, one_time_only=False):
    alarm = _monday_alarm(store, one_time_only=one_time_only)
    controller.tick(at(6, 59, 59))
    controller.tick(at(7, 0))
    return alarm


def test_alarm_activates_at_its_time(controller, store, sound):
    alarm = _monday_alarm(store)
    controller.tick(at(6, 59, 58))
    controller.tick(at(6, 59, 59))
    assert alarm.phase == AlarmPhase.SCHEDULED
    assert sound.played == []

    controller.tick(at(7, 0))
    assert alarm.phase == AlarmPhase.ACTIVE
    assert alarm.activated_at == at(7, 0)
    assert sound.played == [("radio", 10)]


def test_alarm_does_not_fire_on_other_weekdays(controller, store, sound):
    alarm = _monday_alarm(store)
    tuesday = MONDAY + timedelta(days=1)
    controller.tick(at(6, 59, 59, day=tuesday))
    controller.tick(at(7, 0, day=tuesday))
    assert alarm.phase == AlarmPhase.SCHEDULED
    assert sound.played == []


def test_past_occurrence_does_not_fire_at_startup(controller, store, sound):
    alarm = _monday_alarm(store)
    controller.tick(at(7, 5))
    controller.tick(at(7, 6))
    assert alarm.phase == AlarmPhase.SCHEDULED
    assert sound.played == []


def test_volume_and_brightness_fade_in(controller, store, sound, light):
    alarm = _ring(controller, store)
    controller.tick(at(7, 2, 30))
    assert sound.volumes[-1] == 35
    assert light.brightness == pytest.approx(12.5)

    controller.tick(at(7, 5))
    assert sound.volumes[-1] == 70
    controller.tick(at(7, 10, 1))
    assert light.brightness == pytest.approx(alarm.light_dim_up_brightness)


def test_reminder_restarts_sound(controller, store, sound):
    _ring(controller, store)
    controller.tick(at(7, 9, 59))
    assert len(sound.played) == 1
    controller.tick(at(7, 10))
    assert sound.played[-1] == ("radio", 60)
    controller.tick(at(7, 10, 1))
    assert sound.volumes[-1] == 70
    assert len(sound.played) == 2


def test_recurring_alarm_stops_after_duration(controller, store, sound):
    alarm = _ring(controller, store)
    controller.tick(at(7, 29, 59))
    assert alarm.phase == AlarmPhase.ACTIVE
    controller.tick(at(7, 30))
    assert alarm.phase == AlarmPhase.STOPPED
    assert sound.stops >= 1
    assert store.get(alarm.id) is alarm


def test_one_time_alarm_is_removed_after_duration(controller, store):
    alarm = _ring(controller, store, one_time_only=True)
    controller.tick(at(7, 30))
    assert alarm.phase == AlarmPhase.STOPPED
    assert store.get(alarm.id) is None


def test_one_time_alarm_without_weekdays_fires_on_any_day(controller, store, sound):
    alarm_id = store.create((), parse_time_of_day("07:00"), 1, one_time_only=True)
    thursday = MONDAY + timedelta(days=3)
    controller.tick(at(6, 59, 59, day=thursday))
    controller.tick(at(7, 0, day=thursday))
    assert store.get(alarm_id).phase == AlarmPhase.ACTIVE
    assert sound.played == [("birds", 10)]


def test_stop_active_alarm_keeps_lights(controller, store, sound, light):
    alarm = _ring(controller, store)
    controller.tick(at(7, 1, 40))
    expected = light.brightness
    assert expected == pytest.approx(50 * 100 / 600)

    controller.stop_active_alarm()
    controller.tick(at(7, 1, 41))
    assert alarm.phase == AlarmPhase.STOPPED
    assert sound.stops >= 1
    assert light.brightness == pytest.approx(expected)

    controller.tick(at(7, 20))
    assert light.brightness == pytest.approx(expected)


def test_duplicate_notifications_are_idempotent(controller, store, sound):
    alarm = _monday_alarm(store)
    store.add_alarm_to_process(alarm)
    store.add_alarm_to_process(alarm)
    controller.tick(at(6, 59, 59))
    controller.tick(at(7, 0))
    assert len(sound.played) == 1

    controller.tick(at(7, 30))
    store.add_alarm_to_process(alarm)
    store.add_alarm_to_process(alarm)
    controller.tick(at(7, 30, 1))
    controller.tick(at(7, 30, 2))
    assert alarm.phase == AlarmPhase.STOPPED
    assert len(sound.played) == 1


def test_recurring_alarm_fires_again_next_week(controller, store, sound):
    alarm = _ring(controller, store)
    controller.tick(at(7, 30))
    next_monday = MONDAY + timedelta(days=7)
    controller.tick(at(6, 59, 59, day=next_monday))
    assert alarm.phase == AlarmPhase.SCHEDULED
    controller.tick(at(7, 0, day=next_monday))
    assert alarm.phase == AlarmPhase.ACTIVE
    assert len(sound.played) == 2


def test_skip_once_skips_exactly_one_occurrence(controller, store, sound):
    alarm = _monday_alarm(store)
    with store.transaction(alarm):
        alarm.skip_once = True

    controller.tick(at(6, 59, 59))
    controller.tick(at(7, 0))
    assert alarm.phase == AlarmPhase.SCHEDULED
    assert alarm.skip_once is False
    assert sound.played == []

    next_monday = MONDAY + timedelta(days=7)
    controller.tick(at(6, 59, 59, day=next_monday))
    controller.tick(at(7, 0, day=next_monday))
    assert alarm.phase == AlarmPhase.ACTIVE


def test_disabling_active_alarm_stops_it(controller, store, sound):
    alarm = _ring(controller, store, one_time_only=True)
    with store.transaction(alarm):
        alarm.enabled = False
    controller.tick(at(7, 0, 1))
    assert alarm.phase == AlarmPhase.STOPPED
    assert sound.stops >= 1
    assert store.get(alarm.id) is alarm


def test_removing_active_alarm_stops_it(controller, store, sound):
    alarm = _ring(controller, store)
    store.remove(alarm)
    controller.tick(at(7, 0, 1))
    assert alarm.phase == AlarmPhase.STOPPED
    assert sound.stops >= 1


def test_sound_timer_stops_sound_after_countdown(controller, sound):
    controller.set_sound_timer(30)
    for second in range(29):
        controller.tick(at(9, 0, second))
    assert sound.stops == 0
    assert controller.get_sound_timer() == 1
    controller.tick(at(9, 0, 29))
    assert sound.stops == 1
    assert controller.get_sound_timer() == 0


def test_deleted_sound_timer_never_fires(controller, sound):
    controller.set_sound_timer(30)
    controller.delete_sound_timer()
    for second in range(40):
        controller.tick(at(9, 0, second))
    assert sound.stops == 0
    assert controller.get_sound_timer() == 0


def test_all_off_switches_everything_off(controller, store, sound, light):
    alarm = _ring(controller, store)
    controller.tick(at(7, 5))
    controller.set_sound_timer(100)
    controller.all_off()
    controller.tick(at(7, 5, 1))
    assert alarm.phase == AlarmPhase.STOPPED
    assert alarm.enabled is True
    assert light.brightness == 0
    assert controller.get_sound_timer() == 0
    assert sound.stops >= 1


def test_all_off_can_disable_alarms(controller, store):
    alarm = _monday_alarm(store)
    controller.all_off(disable_alarms=True)
    controller.tick(at(6, 0))
    assert alarm.enabled is False
    controller.tick(at(7, 0))
    assert alarm.phase == AlarmPhase.SCHEDULED


def test_snooze_creates_one_time_alarm(controller, store, sound):
    alarm = _ring(controller, store)
    controller.tick(at(7, 5))
    controller.snooze(5)
    controller.tick(at(7, 5, 1))
    assert alarm.phase == AlarmPhase.STOPPED

    snoozed = [a for a in store.list() if a is not alarm]
    assert len(snoozed) == 1
    assert snoozed[0].one_time_only is True
    assert snoozed[0].time == parse_time_of_day("07:10:01")

    controller.tick(at(7, 10))
    controller.tick(at(7, 10, 1))
    assert snoozed[0].phase == AlarmPhase.ACTIVE
    assert sound.played[-1] == ("radio", 10)


def test_light_commands_run_on_tick(controller, light):
    assert controller.set_light_brightness(1, 40).ok
    assert light.brightness == 0
    controller.tick(at(9, 0))
    assert light.brightness == 40

    assert not controller.set_light_brightness(7, 40).ok
    assert not controller.set_light_brightness(1, 140).ok


def test_dim_light_ramps_up(controller, light):
    assert controller.dim_light(1, target=100, seconds=600).ok
    controller.tick(at(9, 0))
    controller.tick(at(9, 5))
    assert light.brightness == pytest.approx(50)
    controller.tick(at(9, 10))
    assert light.brightness == pytest.approx(100)


def test_play_sound_validates_id(controller, sound):
    assert not controller.play_sound(9).ok
    assert controller.play_sound(2).ok
    controller.tick(at(9, 0))
    assert sound.played == [("rain", None)]


def test_hardware_failures_do_not_abort_alarm(store):
    sound = FakeSound(fail=True)
    light = FakeLight(fail=True)
    controller = AlarmController(store, sound, lights=[light], clock=lambda: at(6, 0))
    alarm = _ring(controller, store)
    assert alarm.phase == AlarmPhase.ACTIVE

    controller.tick(at(7, 2, 30))
    controller.tick(at(7, 30))
    assert alarm.phase == AlarmPhase.STOPPED
    assert light.brightness == 0


def test_start_and_stop_thread(store, sound, light):
    controller = AlarmController(store, sound, lights=[light], check_interval=0.2)
    controller.start()
    assert controller.is_running
    controller.stop()
    assert not controller.is_running
    assert light.applied[-1] == 0
