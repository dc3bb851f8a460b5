from datetime import datetime
from pathlib import Path

import pytest

from alarms.context import AlarmContext
from alarms.controller import AlarmController
from alarms.errors import HardwareError
from alarms.lights import LightControl
from alarms.sounds import Sound, SoundControl, SoundType
from alarms.storage import Alarm
from alarms.store import AlarmStore

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1)


def at(hour, minute=0, second=0, day=MONDAY):
    return day.replace(hour=hour, minute=minute, second=second)


class FakeSound(SoundControl):
    def __init__(self, fail=False):
        self.fail = fail
        self.enabled = True
        self.volume = 50
        self.played = []
        self.volumes = []
        self.stops = 0

    def _check(self):
        if self.fail:
            raise HardwareError("sound device gone")

    def on(self):
        self.enabled = True

    def off(self):
        self.enabled = False

    def play_sound(self, sound, volume=None, append=False):
        self._check()
        self.played.append((sound.name, volume))

    def play_file(self, path: Path, volume=None):
        self._check()
        self.played.append((str(path), volume))

    def stop(self):
        self.stops += 1
        self._check()

    def set_volume(self, volume):
        self._check()
        self.volume = volume
        self.volumes.append(volume)

    def get_volume(self):
        return self.volume


class FakeLight(LightControl):
    def __init__(self, light_id=1, name="bed", fail=False):
        super().__init__(light_id, name)
        self.fail = fail
        self.applied = []
        self.pwm = []

    def _apply(self, percent):
        if self.fail:
            raise HardwareError("pwm failure")
        self.applied.append(percent)

    def set_pwm(self, value):
        self.pwm.append(value)


@pytest.fixture
def sounds():
    return [
        Sound(name="radio", type=SoundType.RADIO, source="http://radio.example/stream"),
        Sound(name="birds", type=SoundType.FILE, source="/music/birds.mp3"),
        Sound(name="rain", type=SoundType.FILE, source="/music/rain.mp3"),
    ]


@pytest.fixture
def store(sounds):
    return AlarmStore(None, Alarm(), sounds)


@pytest.fixture
def sound():
    return FakeSound()


@pytest.fixture
def light():
    return FakeLight()


@pytest.fixture
def controller(store, sound, light):
    return AlarmController(store, sound, lights=[light], clock=lambda: at(6, 0))


@pytest.fixture
def context(store, controller):
    return AlarmContext("test", store, controller)
