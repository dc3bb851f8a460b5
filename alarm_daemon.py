import logging
import signal
import sys
import time
from pathlib import Path

from alarms.context import AlarmContext
from alarms.controller import AlarmController
from alarms.errors import ConfigurationError
from alarms.http_api import start_http_server
from alarms.lights import create_light
from alarms.sounds import LocalSpeaker, MpvSoundControl, ensure_alarm_sound
from alarms.store import AlarmStore
from alarms.tcp_server import start_command_server
from config import Config, dump_config, load_config, setup_logging

logger = logging.getLogger("alarmpi")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


def build_context(config: Config) -> AlarmContext:
    store = AlarmStore(config.alarms_path, config.alarm_template, config.sounds)
    store.load_all()
    for alarm in store.list():
        logger.debug(
            "Stored alarm id=%s enabled=%s oneTimeOnly=%s skipOnce=%s time=%s days=%s soundId=%s",
            alarm.id,
            alarm.enabled,
            alarm.one_time_only,
            alarm.skip_once,
            alarm.time,
            sorted(alarm.week_days),
            alarm.sound_id,
        )

    ensure_alarm_sound(Path(config.alarm_template.sound))
    lights = []
    for settings in config.lights:
        try:
            lights.append(create_light(settings))
        except Exception as exc:
            logger.error("Failed to initialize light %s (%s): %s", settings.id, settings.type, exc)

    speaker = LocalSpeaker() if config.speak_greeting else None
    controller = AlarmController(
        store=store,
        sound=MpvSoundControl(default_volume=config.volume_default),
        lights=lights,
        check_interval=config.controller_interval_ms / 1000.0,
        speaker=speaker,
        default_snooze_minutes=config.snooze_minutes,
    )
    return AlarmContext(config.name, store, controller)


def main() -> None:
    try:
        config = load_config()
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config.log_level, config.log_dir)
    logger.info("AlarmPi started successfully, configuration read")
    dump_config(config)

    signal.signal(signal.SIGINT, graceful_exit)
    signal.signal(signal.SIGTERM, graceful_exit)

    context = build_context(config)
    context.controller.start()

    servers = []
    if config.cmd_port == 0:
        logger.error("No TCP cmd server port specified - no server is started")
    else:
        try:
            servers.append(start_command_server(context, config.bind_address, config.cmd_port))
        except OSError as exc:
            logger.error("Unable to create server socket for remote client access on port %s: %s", config.cmd_port, exc)
    if config.json_port == 0:
        logger.error("No HTTP JSON server port specified - no server is started")
    else:
        try:
            servers.append(start_http_server(context, config.bind_address, config.json_port))
        except OSError as exc:
            logger.error("Unable to create server socket for json client access on port %s: %s", config.json_port, exc)

    try:
        while context.controller.is_running:
            time.sleep(0.5)
        logger.error("Controller thread ended unexpectedly")
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        for server in servers:
            server.shutdown()
            server.server_close()
        context.controller.stop()
        for light in context.get_light_control_list():
            light.close()
        logger.info("AlarmPi stopped")


if __name__ == "__main__":
    main()
