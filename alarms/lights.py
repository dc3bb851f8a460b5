"""Light outputs driven by the controller thread."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class LightSettings:
    id: int
    type: str = "none"
    name: str = ""
    gpio: int = 18
    pwm_offset: int = 0
    pwm_full_scale: int = 0
    pwm_inversion: bool = False


class LightControl:
    """A single dimmable light. Brightness is in percent (0..100)."""

    def __init__(self, light_id: int, name: str):
        self.id = light_id
        self.name = name
        self._brightness = 0.0

    @property
    def brightness(self) -> float:
        return self._brightness

    def set_brightness(self, percent: float) -> None:
        percent = max(0.0, min(100.0, float(percent)))
        self._apply(percent)
        self._brightness = percent

    def set_off(self) -> None:
        self.set_brightness(0)

    def set_pwm(self, value: int) -> None:
        """Debug hook: write a raw PWM value, bypassing the brightness mapping."""
        logger.warning("Light %s (%s) has no raw PWM output, ignoring %s", self.id, self.name, value)

    def close(self) -> None:
        pass

    def _apply(self, percent: float) -> None:
        raise NotImplementedError


class NoLight(LightControl):
    """Light without a local driver; only the requested value is tracked."""

    def _apply(self, percent: float) -> None:
        logger.debug("Light %s (%s) -> %.1f%% (no driver)", self.id, self.name, percent)


class GpioPwmLight(LightControl):
    """LED strip on a Raspberry Pi PWM pin, driven through gpiozero."""

    def __init__(self, settings: LightSettings):
        super().__init__(settings.id, settings.name)
        from gpiozero import PWMLED

        self._led: Optional[PWMLED] = PWMLED(settings.gpio, frequency=1000)
        self.pwm_offset = settings.pwm_offset
        self.pwm_full_scale = settings.pwm_full_scale or 1000
        self.pwm_inversion = settings.pwm_inversion
        logger.info("Light %s (%s) initialized on GPIO %s", self.id, self.name, settings.gpio)

    def pwm_value(self, percent: float) -> float:
        if percent <= 0:
            value = 0.0
        else:
            span = self.pwm_full_scale - self.pwm_offset
            value = (self.pwm_offset + span * percent / 100.0) / self.pwm_full_scale
        value = max(0.0, min(1.0, value))
        return 1.0 - value if self.pwm_inversion else value

    def _apply(self, percent: float) -> None:
        if self._led is None:
            return
        self._led.value = self.pwm_value(percent)

    def set_pwm(self, value: int) -> None:
        if self._led is None:
            return
        self._led.value = max(0.0, min(1.0, value / self.pwm_full_scale))
        logger.debug("Light %s raw PWM set to %s/%s", self.id, value, self.pwm_full_scale)

    def close(self) -> None:
        if self._led is not None:
            self._led.close()
            self._led = None


def create_light(settings: LightSettings) -> LightControl:
    kind = (settings.type or "none").lower()
    if kind == "gpio":
        return GpioPwmLight(settings)
    if kind in ("pca9685", "nrf24lo1", "mqtt"):
        logger.warning("Light %s: %s backend not available locally, using no-op light", settings.id, kind)
    elif kind != "none":
        logger.error("Invalid light control type: %s", settings.type)
    return NoLight(settings.id, settings.name)
