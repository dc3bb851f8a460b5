import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from alarms.errors import ConfigurationError
from alarms.lights import LightSettings
from alarms.sounds import Sound, SoundType, build_playlists
from alarms.storage import Alarm

LIGHT_TYPES = ("none", "gpio", "pca9685", "nrf24lo1", "mqtt")


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ConfigurationError(f"Environment variable {name} must be an integer") from exc


def _get_env_percent(name: str, default: int) -> int:
    value = _get_env_int(name, default)
    if not 0 <= value <= 100:
        raise ConfigurationError(f"Environment variable {name} must be between 0 and 100")
    return value


@dataclass
class Config:
    name: str
    volume_default: int
    log_level: str
    log_dir: Path
    bind_address: str
    cmd_port: int
    json_port: int
    alarms_path: Path
    controller_interval_ms: int
    snooze_minutes: int
    speak_greeting: bool
    alarm_template: Alarm
    sounds: List[Sound] = field(default_factory=list)
    lights: List[LightSettings] = field(default_factory=list)


def _load_template() -> Alarm:
    template = Alarm()
    template.greeting = os.getenv("ALARM_GREETING", "")
    template.fade_in_duration = _get_env_int("ALARM_FADE_IN", 300)
    template.duration = _get_env_int("ALARM_DURATION", 1800)
    template.reminder_interval = _get_env_int("ALARM_REMINDER_INTERVAL", 300)
    template.volume_fade_in_start = _get_env_percent("ALARM_VOLUME_FADE_IN_START", 10)
    template.volume_fade_in_end = _get_env_percent("ALARM_VOLUME_FADE_IN_END", 60)
    template.volume_alarm_end = _get_env_percent("ALARM_VOLUME_ALARM_END", 70)
    template.light_dim_up_duration = _get_env_int("ALARM_LIGHT_DIM_UP_DURATION", 600)
    template.light_dim_up_brightness = _get_env_percent("ALARM_LIGHT_DIM_UP_BRIGHTNESS", 50)
    template.sound = os.getenv("ALARM_SOUND_FILE", "data/alarm.wav")
    if template.duration <= 0:
        raise ConfigurationError("ALARM_DURATION must be positive")
    if min(template.fade_in_duration, template.reminder_interval, template.light_dim_up_duration) < 0:
        raise ConfigurationError("Alarm fade, reminder and dim-up durations must not be negative")
    if template.fade_in_duration > template.duration:
        logging.warning("ALARM_FADE_IN (%s) exceeds ALARM_DURATION (%s)", template.fade_in_duration, template.duration)
    return template


def _load_sounds() -> List[Sound]:
    sounds: List[Sound] = []
    index = 1
    while os.getenv(f"SOUND{index}_NAME"):
        name = os.getenv(f"SOUND{index}_NAME", "")
        sound_type = os.getenv(f"SOUND{index}_TYPE", "").strip().upper()
        source = os.getenv(f"SOUND{index}_SOURCE", "")
        try:
            sounds.append(Sound(name=name, type=SoundType(sound_type), source=source))
        except ValueError:
            logging.error("Unknown sound type: %s (SOUND%s)", sound_type, index)
        index += 1
    build_playlists(sounds)
    return sounds


def _load_lights() -> List[LightSettings]:
    lights: List[LightSettings] = []
    index = 1
    while os.getenv(f"LIGHT{index}_TYPE") is not None or os.getenv(f"LIGHT{index}_NAME") is not None:
        light_type = (os.getenv(f"LIGHT{index}_TYPE") or "none").strip().lower()
        if light_type not in LIGHT_TYPES:
            logging.error("Invalid light control type: %s (LIGHT%s)", light_type, index)
            light_type = "none"
        lights.append(
            LightSettings(
                id=index,
                type=light_type,
                name=os.getenv(f"LIGHT{index}_NAME", f"light{index}"),
                gpio=_get_env_int(f"LIGHT{index}_GPIO", 18),
                pwm_offset=_get_env_int(f"LIGHT{index}_PWM_OFFSET", 0),
                pwm_full_scale=_get_env_int(f"LIGHT{index}_PWM_FULL_SCALE", 0),
                pwm_inversion=_get_env_bool(f"LIGHT{index}_PWM_INVERSION", False),
            )
        )
        index += 1
    return lights


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    config = Config(
        name=os.getenv("ALARMPI_NAME") or "AlarmPi",
        volume_default=_get_env_percent("VOLUME_DEFAULT", 50),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
        bind_address=os.getenv("BIND_ADDRESS", "0.0.0.0"),
        cmd_port=_get_env_int("CMD_PORT", 3946),
        json_port=_get_env_int("JSON_PORT", 3948),
        alarms_path=Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json")),
        controller_interval_ms=max(200, _get_env_int("CONTROLLER_INTERVAL_MS", 1000)),
        snooze_minutes=_get_env_int("SNOOZE_MINUTES", 5),
        speak_greeting=_get_env_bool("SPEAK_GREETING", True),
        alarm_template=_load_template(),
        sounds=_load_sounds(),
        lights=_load_lights(),
    )
    for port_name in ("cmd_port", "json_port"):
        if not 0 <= getattr(config, port_name) <= 65535:
            raise ConfigurationError(f"{port_name.upper()} out of range")
    return config


def dump_config(config: Config) -> None:
    logger = logging.getLogger(__name__)
    template = config.alarm_template
    lines = [
        "configuration data:",
        f"  name: {config.name}",
        f"  default volume: {config.volume_default}",
        f"  cmdServerPort={config.cmd_port} jsonServerPort={config.json_port}",
        "  lights:",
    ]
    for light in config.lights:
        lines.append(
            f"    id={light.id} type={light.type} name={light.name} gpio={light.gpio}"
            f" pwmInversion={light.pwm_inversion} pwmOffset={light.pwm_offset} pwmFullScale={light.pwm_full_scale}"
        )
    lines.append("  sounds:")
    for sound in config.sounds:
        lines.append(f"    name={sound.name} type={sound.type.value} source={sound.source}")
    lines.append(
        f"  alarm template: greeting={template.greeting!r} fadeIn={template.fade_in_duration}"
        f" duration={template.duration} reminderInterval={template.reminder_interval}"
        f" volume={template.volume_fade_in_start}/{template.volume_fade_in_end}/{template.volume_alarm_end}"
        f" lightDimUp={template.light_dim_up_duration}s@{template.light_dim_up_brightness}% sound={template.sound}"
    )
    logger.debug("\n".join(lines))


def setup_logging(log_level: str = "INFO", logs_dir: Path = Path("logs")) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_path = logs_dir / "alarmpi.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
