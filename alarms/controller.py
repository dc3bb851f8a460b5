from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Optional

from time_utils import candidate_occurrences, now_local, seconds_between

from .errors import ConcurrencyError, ErrorKind, Result
from .fade import brightness_at, ramp_value, reminder_due, volume_at
from .lights import LightControl
from .notifications import ProcessingQueue
from .sounds import LocalSpeaker, SoundControl
from .storage import Alarm, AlarmPhase
from .store import AlarmStore

logger = logging.getLogger(__name__)

DIM_UP_BRIGHTNESS = 100
DIM_UP_SECONDS = 600


class AlarmRuntimeState:
    def __init__(self, armed_after: datetime) -> None:
        # only occurrences strictly after this moment may fire
        self.armed_after = armed_after
        self.reminders_played = 0
        self.last_volume: Optional[int] = None
        self.last_brightness: Optional[float] = None
        self.stopped_at: Optional[datetime] = None


@dataclass
class LightRamp:
    started: datetime
    start: float
    target: float
    duration: float


Command = Callable[[datetime], None]


class AlarmController:
    """Single thread that owns alarm firing and all sound/light output.

    Each tick drains the store notifications and the queued commands,
    activates due alarms and advances the active ones. Remote adapters
    never touch the hardware; they queue commands that run here.
    """

    def __init__(
        self,
        store: AlarmStore,
        sound: SoundControl,
        lights: Optional[List[LightControl]] = None,
        check_interval: float = 1.0,
        speaker: Optional[LocalSpeaker] = None,
        default_snooze_minutes: int = 5,
        clock: Callable[[], datetime] = now_local,
    ):
        self.store = store
        self.sound = sound
        self.lights: List[LightControl] = list(lights or [])
        self.check_interval = max(0.2, check_interval)
        self.speaker = speaker
        self.default_snooze_minutes = max(1, default_snooze_minutes)
        self.clock = clock

        self._commands: ProcessingQueue[Command] = ProcessingQueue()
        self._runtime: Dict[int, AlarmRuntimeState] = {}
        self._light_ramps: Dict[int, LightRamp] = {}
        self._last_tick: Optional[datetime] = None

        self._timer_lock = Lock()
        self._sound_timer = 0
        # last volume sent to the sound output, read by status queries
        self._volume = sound.get_volume()

        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    # thread lifecycle

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-controller", daemon=True)
        self._thread.start()
        logger.info("Controller started (interval=%.1fs)", self.check_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Controller thread did not finish within %.1fs", timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick(self.clock())
            except ConcurrencyError:
                raise
            except Exception:
                logger.error("Controller tick failed", exc_info=True)
            self._stop_event.wait(self.check_interval)

        logger.info("Controller stopping, switching everything off")
        self._all_off(self.clock(), disable_alarms=False)
        dropped = len(self.store.queue.drain()) + len(self._commands.drain())
        if dropped:
            logger.info("Dropped %d pending notifications/commands at shutdown", dropped)

    # one polling step

    def tick(self, now: datetime) -> None:
        if self._last_tick is None:
            self._last_tick = now
        self._process_notifications(now)
        self._process_commands(now)
        self._detect_due(now)
        self._advance_active(now)
        self._advance_light_ramps(now)
        self._advance_sound_timer()
        self._last_tick = now

    def _process_notifications(self, now: datetime) -> None:
        for alarm in self.store.queue.drain():
            in_store = self.store.contains(alarm)
            if alarm.phase == AlarmPhase.ACTIVE and (not in_store or not alarm.enabled):
                logger.info("Alarm %s %s while active, stopping it", alarm.id, "removed" if not in_store else "disabled")
                self._force_stop(alarm, now)
            if not in_store:
                self._runtime.pop(alarm.id, None)
                continue
            if alarm.phase != AlarmPhase.ACTIVE:
                state = self._state_for(alarm)
                state.armed_after = max(state.armed_after, self._last_tick)

    def _process_commands(self, now: datetime) -> None:
        for command in self._commands.drain():
            try:
                command(now)
            except ConcurrencyError:
                raise
            except Exception:
                logger.error("Controller command failed", exc_info=True)

    def _detect_due(self, now: datetime) -> None:
        for alarm in self.store.list():
            if not alarm.enabled or alarm.phase == AlarmPhase.ACTIVE:
                continue
            state = self._state_for(alarm)
            if alarm.phase == AlarmPhase.STOPPED and state.stopped_at and now.date() > state.stopped_at.date():
                alarm.phase = AlarmPhase.SCHEDULED

            due = [
                occurrence
                for occurrence in candidate_occurrences(now, alarm.time, alarm.week_days, alarm.one_time_only)
                if state.armed_after < occurrence <= now
            ]
            if not due:
                continue
            occurrence = max(due)
            state.armed_after = occurrence

            if alarm.skip_once:
                logger.info("Alarm %s skipped once at %s", alarm.id, occurrence.strftime("%H:%M"))
                with self.store.transaction(alarm):
                    alarm.skip_once = False
                continue

            self._activate(alarm, state, now)

    def _activate(self, alarm: Alarm, state: AlarmRuntimeState, now: datetime) -> None:
        logger.info("Alarm %s triggered at %s", alarm.id, now.strftime("%H:%M:%S"))
        alarm.phase = AlarmPhase.ACTIVE
        alarm.activated_at = now
        state.reminders_played = 0
        state.last_brightness = None
        state.stopped_at = None
        volume = volume_at(alarm, 0)
        self._start_alarm_sound(alarm, volume)
        state.last_volume = volume
        if alarm.greeting and self.speaker and self.speaker.available:
            self.speaker.speak_async(alarm.greeting)

    def _advance_active(self, now: datetime) -> None:
        for alarm in self.store.list():
            if alarm.phase != AlarmPhase.ACTIVE:
                continue
            state = self._state_for(alarm)
            elapsed = seconds_between(alarm.activated_at, now)

            if elapsed >= alarm.duration:
                logger.info("Alarm %s reached its duration of %ss", alarm.id, alarm.duration)
                self._finish(alarm, now)
                continue

            brightness = brightness_at(alarm, elapsed)
            if brightness != state.last_brightness:
                for light in self._lights_for(alarm):
                    self._light_ramps.pop(light.id, None)
                    self._safe("set brightness of light %s" % light.id, light.set_brightness, brightness)
                state.last_brightness = brightness

            volume = volume_at(alarm, elapsed)
            if volume != state.last_volume:
                self._apply_volume(volume)
                state.last_volume = volume

            if reminder_due(alarm, elapsed, state.reminders_played):
                state.reminders_played += 1
                logger.info("Alarm %s reminder %d", alarm.id, state.reminders_played)
                self._start_alarm_sound(alarm, alarm.volume_fade_in_end)
                state.last_volume = alarm.volume_fade_in_end

    def _advance_light_ramps(self, now: datetime) -> None:
        for light_id, ramp in list(self._light_ramps.items()):
            light = self._light(light_id)
            if light is None:
                del self._light_ramps[light_id]
                continue
            elapsed = seconds_between(ramp.started, now)
            self._safe("dim light %s" % light_id, light.set_brightness, ramp_value(ramp.start, ramp.target, ramp.duration, elapsed))
            if elapsed >= ramp.duration:
                del self._light_ramps[light_id]

    def _advance_sound_timer(self) -> None:
        with self._timer_lock:
            if self._sound_timer <= 0:
                return
            self._sound_timer -= 1
            expired = self._sound_timer == 0
        if expired:
            logger.info("Sound timer expired, stopping sound")
            self._safe("stop sound", self.sound.stop)

    # state transitions

    def _finish(self, alarm: Alarm, now: datetime) -> None:
        """Complete the current occurrence. Lights keep their last value."""
        self._force_stop(alarm, now)
        if alarm.one_time_only:
            logger.info("One-time alarm %s completed, removing it", alarm.id)
            self.store.remove(alarm)

    def _force_stop(self, alarm: Alarm, now: datetime) -> None:
        self._safe("stop sound", self.sound.stop)
        alarm.phase = AlarmPhase.STOPPED
        alarm.activated_at = None
        state = self._runtime.get(alarm.id)
        if state is not None:
            state.stopped_at = now

    def _start_alarm_sound(self, alarm: Alarm, volume: int) -> None:
        sound = self.store.get_sound(alarm.sound_id)
        if sound is not None:
            played = self._safe("play sound %s" % sound.name, self.sound.play_sound, sound, volume)
        else:
            played = self._safe("play file %s" % alarm.sound, self.sound.play_file, Path(alarm.sound), volume)
        if played:
            self._remember_volume(volume)

    def _apply_volume(self, volume: int) -> None:
        if self._safe("set volume", self.sound.set_volume, volume):
            self._remember_volume(volume)

    def _state_for(self, alarm: Alarm) -> AlarmRuntimeState:
        state = self._runtime.get(alarm.id)
        if state is None:
            state = AlarmRuntimeState(armed_after=self._last_tick or self.clock())
            self._runtime[alarm.id] = state
        return state

    def _lights_for(self, alarm: Alarm) -> List[LightControl]:
        if not alarm.light_ids:
            return self.lights
        return [light for light in self.lights if light.id in alarm.light_ids]

    def _light(self, light_id: int) -> Optional[LightControl]:
        for light in self.lights:
            if light.id == light_id:
                return light
        return None

    def _safe(self, action: str, fn: Callable, *args) -> bool:
        try:
            fn(*args)
            return True
        except Exception:
            logger.error("Failed to %s", action, exc_info=True)
            return False

    # explicit commands, executed on the controller thread

    def submit(self, command: Command) -> None:
        self._commands.enqueue(command)

    def stop_active_alarm(self) -> None:
        self.submit(self._stop_active)

    def all_off(self, disable_alarms: bool = False) -> None:
        self.submit(lambda now: self._all_off(now, disable_alarms))

    def snooze(self, minutes: Optional[int] = None) -> None:
        self.submit(lambda now: self._snooze(now, minutes or self.default_snooze_minutes))

    def sound_on(self) -> None:
        self.submit(lambda now: self._safe("switch sound on", self.sound.on))

    def sound_off(self) -> None:
        self.submit(lambda now: self._safe("switch sound off", self.sound.off))

    def play_sound(self, sound_id: int, volume: Optional[int] = None) -> Result:
        sound = self.store.get_sound(sound_id)
        if sound is None:
            return Result.failure(ErrorKind.VALIDATION, "invalid sound ID")

        def play(now: datetime) -> None:
            self._safe("switch sound on", self.sound.on)
            played = self._safe("play sound %s" % sound.name, self.sound.play_sound, sound, volume)
            if played and volume is not None:
                self._remember_volume(volume)

        self.submit(play)
        return Result.success()

    def set_volume(self, volume: int) -> Result:
        if not 0 <= volume <= 100:
            return Result.failure(ErrorKind.VALIDATION, "out of range (0...100)")
        self.submit(lambda now: self._apply_volume(volume))
        return Result.success()

    def set_light_brightness(self, light_id: int, percent: float) -> Result:
        light = self._light(light_id)
        if light is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"unknown light id {light_id}")
        if not 0 <= percent <= 100:
            return Result.failure(ErrorKind.VALIDATION, "brightness out of range (0...100)")

        def apply(now: datetime) -> None:
            self._light_ramps.pop(light_id, None)
            self._safe("set brightness of light %s" % light_id, light.set_brightness, percent)

        self.submit(apply)
        return Result.success()

    def set_light_pwm(self, light_id: int, value: int) -> Result:
        light = self._light(light_id)
        if light is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"unknown light id {light_id}")

        def apply(now: datetime) -> None:
            self._light_ramps.pop(light_id, None)
            self._safe("set raw pwm of light %s" % light_id, light.set_pwm, value)

        self.submit(apply)
        return Result.success()

    def light_off(self, light_id: int) -> Result:
        return self.set_light_brightness(light_id, 0)

    def dim_light(self, light_id: int, target: float = DIM_UP_BRIGHTNESS, seconds: float = DIM_UP_SECONDS) -> Result:
        light = self._light(light_id)
        if light is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"unknown light id {light_id}")

        def start_ramp(now: datetime) -> None:
            self._light_ramps[light_id] = LightRamp(started=now, start=light.brightness, target=target, duration=seconds)

        self.submit(start_ramp)
        return Result.success()

    def _stop_active(self, now: datetime) -> None:
        active = [a for a in self.store.list() if a.phase == AlarmPhase.ACTIVE]
        if not active:
            logger.info("Stop requested but no alarm is active")
            self._safe("stop sound", self.sound.stop)
            return
        for alarm in active:
            logger.info("Stopping active alarm %s on request", alarm.id)
            self._finish(alarm, now)

    def _all_off(self, now: datetime, disable_alarms: bool) -> None:
        logger.info("All off (disable alarms=%s)", disable_alarms)
        for alarm in self.store.list():
            if alarm.phase == AlarmPhase.ACTIVE:
                self._finish(alarm, now)
        self.delete_sound_timer()
        self._safe("stop sound", self.sound.stop)
        self._light_ramps.clear()
        for light in self.lights:
            self._safe("switch off light %s" % light.id, light.set_off)
        if disable_alarms:
            for alarm in self.store.list():
                if alarm.enabled:
                    with self.store.transaction(alarm):
                        alarm.enabled = False

    def _snooze(self, now: datetime, minutes: int) -> None:
        active = [a for a in self.store.list() if a.phase == AlarmPhase.ACTIVE]
        if not active:
            logger.info("Snooze requested but no alarm is active")
            return
        ringing = active[-1]
        for alarm in active:
            self._finish(alarm, now)
        fire_at = now + timedelta(minutes=minutes)
        alarm_id = self.store.create((), fire_at.time().replace(microsecond=0), ringing.sound_id, one_time_only=True, light_ids=ringing.light_ids)
        logger.info("Snoozed alarm %s for %d minutes (new alarm %s)", ringing.id, minutes, alarm_id)

    # sound timer and last volume, guarded by their own lock

    def set_sound_timer(self, seconds: int) -> None:
        with self._timer_lock:
            self._sound_timer = max(0, int(seconds))
        logger.info("Sound timer set to %ss", seconds)

    def delete_sound_timer(self) -> None:
        with self._timer_lock:
            self._sound_timer = 0

    def get_sound_timer(self) -> int:
        with self._timer_lock:
            return self._sound_timer

    def _remember_volume(self, volume: int) -> None:
        with self._timer_lock:
            self._volume = volume

    def get_volume(self) -> int:
        with self._timer_lock:
            return self._volume

    def get_light_control_list(self) -> List[LightControl]:
        return list(self.lights)
