"""Line protocol commands: ``<command>[?] [params...]`` -> ``OK``/``ERROR``."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .context import AlarmContext
from .errors import ErrorKind, ProtocolError, Result, ValidationError

logger = logging.getLogger(__name__)

MAX_REQUEST_LENGTH = 100
RESERVED_COMMANDS = ("exit", "help")

_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

Operation = Callable[[List[str]], Result]


@dataclass
class CommandHandler:
    name: str
    set: Operation
    get: Operation


@dataclass
class Request:
    command: str
    is_query: bool
    parameters: List[str]


def parse_request(message: str) -> Request:
    message = message.strip()
    if not message:
        raise ProtocolError("empty request")
    if len(message) >= MAX_REQUEST_LENGTH:
        raise ProtocolError(f"message exceeds max. length of {MAX_REQUEST_LENGTH}")
    command, _, rest = message.partition(" ")
    command = command.lower()
    is_query = command.endswith("?")
    if is_query:
        command = command[:-1]
    return Request(command=command, is_query=is_query, parameters=rest.split())


def format_result(result: Result) -> str:
    if result.ok:
        payload = "" if result.payload is None else str(result.payload)
        return "OK\n" + payload
    return "ERROR\n" + result.message


class CommandRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, CommandHandler] = {}

    def register(self, name: str, set_op: Operation, get_op: Operation) -> None:
        if not _NAME_RE.match(name or ""):
            raise ValueError(f"invalid command name {name!r}")
        if name in RESERVED_COMMANDS or name in self._handlers:
            raise ValueError(f"command {name!r} already registered")
        self._handlers[name] = CommandHandler(name=name, set=set_op, get=get_op)

    def names(self) -> List[str]:
        return list(self._handlers)

    def lookup(self, name: str) -> Optional[CommandHandler]:
        return self._handlers.get(name)

    def execute(self, request: Request) -> Result:
        if request.command == "help":
            lines = ["available commands:"] + [f"  {name}" for name in self._handlers]
            return Result.success("\n".join(lines) + "\n")
        handler = self.lookup(request.command)
        if handler is None:
            logger.info("Received unknown command: %s", request.command)
            return Result.failure(ErrorKind.PROTOCOL, f"Unknown command {request.command}")
        operation = handler.get if request.is_query else handler.set
        try:
            return operation(request.parameters)
        except (ValueError, IndexError) as exc:
            logger.info("Command %s failed: %s", request.command, exc)
            return Result.failure(ErrorKind.VALIDATION, f"{request.command}: {exc}")


def _parse_int(value: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"unable to parse {what} {value!r}") from None


def _timer_value(parameters: List[str], usage: str) -> Tuple[bool, int]:
    if len(parameters) != 1:
        raise ValidationError(f"invalid parameter count ({len(parameters)}). Syntax: {usage}")
    if parameters[0].lower() == "off":
        return False, 0
    seconds = _parse_int(parameters[0], "timer value")
    if seconds < 0:
        raise ValidationError("timer value must not be negative")
    return True, seconds


class RemoteCommands:
    """Command implementations operating on the shared alarm context."""

    def __init__(self, context: AlarmContext):
        self.context = context
        self._calendar_url: Optional[str] = None

    def register_all(self, registry: CommandRegistry) -> CommandRegistry:
        registry.register("loglevel", self.set_loglevel, self.get_loglevel)
        registry.register("sound", self.set_sound, self.get_sound)
        registry.register("lights", self.set_lights, self.get_lights)
        registry.register("timer", self.set_timer, self.get_timer)
        registry.register("calendar", self.set_calendar, self.get_calendar)
        return registry

    # loglevel

    def set_loglevel(self, parameters: List[str]) -> Result:
        if len(parameters) != 1:
            return Result.failure(ErrorKind.VALIDATION, "loglevel: syntax loglevel <level>")
        level = logging.getLevelName(parameters[0].upper())
        if not isinstance(level, int):
            return Result.failure(ErrorKind.VALIDATION, f"invalid log level {parameters[0]}")
        logging.getLogger().setLevel(level)
        logger.info("Log level changed to %s", logging.getLevelName(level))
        return Result.success()

    def get_loglevel(self, parameters: List[str]) -> Result:
        return Result.success(logging.getLevelName(logging.getLogger().getEffectiveLevel()))

    # sound

    def set_sound(self, parameters: List[str]) -> Result:
        if not parameters:
            return Result.failure(ErrorKind.VALIDATION, "sound: missing command (on | off | play | volume | timer)")
        action, args = parameters[0].lower(), parameters[1:]
        controller = self.context.controller
        if action == "on":
            controller.sound_on()
            return Result.success()
        if action == "off":
            controller.sound_off()
            return Result.success()
        if action == "play":
            if not args:
                return Result.failure(ErrorKind.VALIDATION, "sound play: sound ID missing")
            try:
                sound_id = int(args[0])
            except ValueError:
                return Result.failure(ErrorKind.VALIDATION, "sound play: invalid sound ID")
            result = controller.play_sound(sound_id)
            return result if result.ok else Result.failure(result.kind, f"sound play: {result.message}")
        if action == "volume":
            if not args:
                return Result.failure(ErrorKind.VALIDATION, "sound volume: missing volume (0...100)")
            result = controller.set_volume(_parse_int(args[0], "volume"))
            return result if result.ok else Result.failure(result.kind, f"sound volume: {result.message}")
        if action == "timer":
            if not args:
                return Result.failure(ErrorKind.VALIDATION, "sound timer: missing timer value")
            return self._apply_timer(args[:1], "sound timer off | <seconds>")
        return Result.failure(ErrorKind.VALIDATION, f"unknown sound command: {parameters[0]}")

    def get_sound(self, parameters: List[str]) -> Result:
        lines = [f"-1 {self.context.controller.get_volume()} {self.context.get_sound_timer()}"]
        for sound in self.context.get_sound_list():
            lines.append(f"{sound.name} {sound.type.value}")
        return Result.success("\n".join(lines) + "\n")

    # lights

    def set_lights(self, parameters: List[str]) -> Result:
        if len(parameters) != 2:
            return Result.failure(
                ErrorKind.VALIDATION,
                f"lights: invalid parameter count ({len(parameters)}). Syntax: lights <id> <percent|off|dim>",
            )
        light_id = _parse_int(parameters[0], "light id")
        value = parameters[1].lower()
        controller = self.context.controller
        if value == "off":
            return controller.light_off(light_id)
        if value == "dim":
            return controller.dim_light(light_id)
        percent = _parse_int(value, "brightness percentage")
        if percent < 0:
            # debugging only, a negative number is a raw PWM value
            return controller.set_light_pwm(light_id, -percent)
        return controller.set_light_brightness(light_id, percent)

    def get_lights(self, parameters: List[str]) -> Result:
        lights = self.context.get_light_control_list()
        values = " ".join(str(int(round(light.brightness))) for light in lights)
        return Result.success(f"{len(lights)} {values}".strip())

    # timer

    def set_timer(self, parameters: List[str]) -> Result:
        return self._apply_timer(parameters, "timer off | <seconds from now>")

    def get_timer(self, parameters: List[str]) -> Result:
        return Result.success(str(self.context.get_sound_timer()))

    def _apply_timer(self, parameters: List[str], usage: str) -> Result:
        enabled, seconds = _timer_value(parameters, usage)
        if enabled and seconds > 0:
            self.context.set_sound_timer(seconds)
        else:
            self.context.delete_sound_timer()
        return Result.success()

    # calendar

    def set_calendar(self, parameters: List[str]) -> Result:
        calendar = self.context.calendar
        if calendar is None:
            return Result.failure(ErrorKind.VALIDATION, "calendar: no calendar configured")
        if not parameters or len(parameters) > 2:
            return Result.failure(ErrorKind.VALIDATION, "calendar: syntax calendar geturl | setcode <code>")
        action = parameters[0].lower()
        if action == "geturl":
            self._calendar_url = calendar.get_authorization_url()
            if self._calendar_url is None:
                return Result.failure(ErrorKind.VALIDATION, "Already authorized")
            return Result.success(self._calendar_url)
        if action == "setcode":
            if self._calendar_url is None:
                return Result.failure(ErrorKind.VALIDATION, "Already authorized or geturl not called")
            if len(parameters) != 2:
                return Result.failure(ErrorKind.VALIDATION, "usage: setcode <code>")
            if calendar.set_authorization_code(parameters[1]):
                return Result.success("Authorization successful.")
            return Result.failure(ErrorKind.VALIDATION, "Authorization failed. Please refer to logfiles for details.")
        return Result.failure(ErrorKind.VALIDATION, f"invalid command: {parameters[0]}")

    def get_calendar(self, parameters: List[str]) -> Result:
        calendar = self.context.calendar
        if calendar is None:
            return Result.failure(ErrorKind.VALIDATION, "calendar: no calendar configured")
        try:
            entries = calendar.get_entries_today()
        except Exception:
            logger.error("Unable to read calendar", exc_info=True)
            return Result.failure(ErrorKind.HARDWARE, "Unable to read calendar")
        return Result.success("".join(f"{entry}\n" for entry in entries))


def build_registry(context: AlarmContext) -> CommandRegistry:
    return RemoteCommands(context).register_all(CommandRegistry())
