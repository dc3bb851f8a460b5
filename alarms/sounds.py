from __future__ import annotations

import json
import logging
import socket
import subprocess
import tempfile
import time
import wave
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Lock, Thread
from typing import List, Optional

import numpy as np

from .errors import HardwareError

try:  # Optional local TTS for spoken greetings
    import pyttsx3
except ImportError:  # pragma: no cover - optional
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundType(Enum):
    RADIO = "RADIO"
    FILE = "FILE"
    EXTERNAL = "EXTERNAL"
    PLAYLIST = "PLAYLIST"


@dataclass
class Sound:
    name: str
    type: SoundType
    source: str
    playlist: Optional[List["Sound"]] = None


def build_playlists(sounds: List[Sound]) -> None:
    """Expand playlist sources (comma separated sound names) into sound lists."""
    by_name = {}
    for sound in sounds:
        by_name.setdefault(sound.name, []).append(sound)
    for sound in sounds:
        if sound.type != SoundType.PLAYLIST:
            continue
        sound.playlist = []
        for name in sound.source.split(","):
            entries = [s for s in by_name.get(name.strip(), []) if s.type != SoundType.PLAYLIST]
            if not entries:
                logger.warning("Playlist %s references unknown sound %s", sound.name, name.strip())
            sound.playlist.extend(entries)
        logger.debug("Playlist %s expanded to %d sounds", sound.name, len(sound.playlist))


def ensure_alarm_sound(path: Path, duration_seconds: float = 1.5) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    sample_rate = 24000
    freq = 880.0
    amplitude = 0.4
    t = np.arange(int(duration_seconds * sample_rate)) / sample_rate
    samples = (32767 * amplitude * np.sin(2 * np.pi * freq * t)).astype("<i2")
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(samples.tobytes())
    logger.info("Generated default alarm sound at %s", path)


class SoundControl:
    """Interface of the sound output used by the controller thread."""

    def on(self) -> None:
        raise NotImplementedError

    def off(self) -> None:
        raise NotImplementedError

    def play_sound(self, sound: Sound, volume: Optional[int] = None, append: bool = False) -> None:
        raise NotImplementedError

    def play_file(self, path: Path, volume: Optional[int] = None) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def set_volume(self, volume: int) -> None:
        raise NotImplementedError

    def get_volume(self) -> int:
        raise NotImplementedError


class MpvSoundControl(SoundControl):
    """Plays files, radio streams and playlists through an mpv subprocess.

    Volume changes while playing go through mpv's JSON IPC socket so a fade
    does not restart the stream.
    """

    def __init__(self, default_volume: int = 50, mpv_binary: str = "mpv"):
        self.mpv_binary = mpv_binary
        self._volume = default_volume
        self._enabled = True
        self._process: Optional[subprocess.Popen] = None
        self._ipc_path = str(Path(tempfile.gettempdir()) / "alarmpi-mpv.sock")

    def on(self) -> None:
        self._enabled = True

    def off(self) -> None:
        self.stop()
        self._enabled = False

    def play_sound(self, sound: Sound, volume: Optional[int] = None, append: bool = False) -> None:
        if sound.type == SoundType.PLAYLIST:
            sources = [s.source for s in sound.playlist or []]
        else:
            sources = [sound.source]
        if not sources:
            raise HardwareError(f"Sound {sound.name} has nothing to play")
        if append and self.is_playing():
            for source in sources:
                self._ipc_command(["loadfile", source, "append-play"])
            return
        self._start(sources, volume, loop=sound.type == SoundType.PLAYLIST)

    def play_file(self, path: Path, volume: Optional[int] = None) -> None:
        self._start([str(path)], volume, loop=False)

    def stop(self) -> None:
        if self._process is None:
            return
        try:
            self._process.terminate()
            self._process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        self._process = None
        logger.info("Playback stopped")

    def set_volume(self, volume: int) -> None:
        self._volume = max(0, min(100, int(volume)))
        if self.is_playing():
            self._ipc_command(["set_property", "volume", self._volume])

    def get_volume(self) -> int:
        return self._volume

    def is_playing(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _start(self, sources: List[str], volume: Optional[int], loop: bool) -> None:
        if not self._enabled:
            logger.info("Sound output is off, not playing %s", sources)
            return
        self.stop()
        if volume is not None:
            self._volume = max(0, min(100, int(volume)))
        args = [
            self.mpv_binary,
            "--no-video",
            f"--volume={self._volume}",
            f"--input-ipc-server={self._ipc_path}",
        ]
        if loop:
            args.append("--loop-playlist=inf")
        args.append("--")
        args.extend(sources)
        try:
            self._process = subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except FileNotFoundError as exc:
            raise HardwareError("mpv not installed. Run: sudo apt install mpv") from exc
        logger.info("Playing %s at volume %s", sources, self._volume)

    def _ipc_command(self, command: list) -> None:
        payload = json.dumps({"command": command}).encode("utf-8") + b"\n"
        # mpv creates the socket shortly after start
        for _ in range(5):
            try:
                with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                    sock.settimeout(1.0)
                    sock.connect(self._ipc_path)
                    sock.sendall(payload)
                return
            except (FileNotFoundError, ConnectionRefusedError):
                time.sleep(0.1)
            except OSError as exc:
                raise HardwareError(f"mpv IPC failed: {exc}") from exc
        raise HardwareError("mpv IPC socket not available")


class LocalSpeaker:
    """Lightweight offline TTS wrapper (uses espeak/SAPI via pyttsx3)."""

    def __init__(self, rate: int = 160):
        self._engine = pyttsx3.init() if pyttsx3 else None
        self._lock = Lock()
        if self._engine:
            try:
                self._engine.setProperty("rate", rate)
            except Exception:
                logger.debug("Failed to set pyttsx3 rate")

    @property
    def available(self) -> bool:
        return self._engine is not None

    def speak_async(self, text: str) -> bool:
        if not self._engine:
            return False
        Thread(target=self._speak, args=(text,), daemon=True).start()
        return True

    def _speak(self, text: str) -> None:
        if not self._engine:
            return
        with self._lock:
            try:
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception:  # pragma: no cover - engine runtime errors
                logger.error("pyttsx3 failed to speak text", exc_info=True)
