import wave

import pytest

from alarms.errors import HardwareError
from alarms.lights import LightSettings, NoLight, create_light
from alarms.sounds import MpvSoundControl, Sound, SoundType, build_playlists, ensure_alarm_sound


def test_unsupported_light_backends_fall_back_to_no_light():
    for kind in ("none", "mqtt", "pca9685", "bogus"):
        light = create_light(LightSettings(id=2, type=kind, name="desk"))
        assert isinstance(light, NoLight)
        assert light.id == 2
        assert light.name == "desk"


def test_light_brightness_is_clamped():
    light = NoLight(1, "bed")
    light.set_brightness(140)
    assert light.brightness == 100
    light.set_brightness(-3)
    assert light.brightness == 0
    light.set_brightness(42.5)
    light.set_off()
    assert light.brightness == 0


def test_build_playlists_skips_unknown_names():
    sounds = [
        Sound("a", SoundType.FILE, "/music/a.mp3"),
        Sound("b", SoundType.RADIO, "http://b.example"),
        Sound("mix", SoundType.PLAYLIST, "b, missing ,a"),
    ]
    build_playlists(sounds)
    assert [s.name for s in sounds[2].playlist] == ["b", "a"]
    assert sounds[0].playlist is None


def test_ensure_alarm_sound_writes_wav_once(tmp_path):
    path = tmp_path / "data" / "alarm.wav"
    ensure_alarm_sound(path, duration_seconds=0.5)
    with wave.open(str(path)) as wav:
        assert wav.getnchannels() == 1
        assert wav.getframerate() == 24000
        assert wav.getnframes() == 12000

    path.write_bytes(b"custom")
    ensure_alarm_sound(path)
    assert path.read_bytes() == b"custom"


def test_missing_mpv_raises_hardware_error(tmp_path):
    control = MpvSoundControl(default_volume=40, mpv_binary=str(tmp_path / "no-such-mpv"))
    with pytest.raises(HardwareError):
        control.play_file(tmp_path / "alarm.wav", 60)
    assert control.get_volume() == 60
    assert not control.is_playing()
    control.stop()


def test_mpv_volume_without_playback():
    control = MpvSoundControl(default_volume=40)
    control.set_volume(120)
    assert control.get_volume() == 100
    control.off()
    control.play_file("ignored.wav", 10)
    assert not control.is_playing()
