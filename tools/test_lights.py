import time

from alarms.lights import create_light
from config import load_config


def main():
    config = load_config()
    lights = [create_light(settings) for settings in config.lights]
    if not lights:
        print("No lights configured (LIGHT1_TYPE ...)")
        return

    for light in lights:
        print(f"Sweeping light {light.id} ({light.name})...")
        for percent in list(range(0, 101, 5)) + list(range(100, -1, -5)):
            light.set_brightness(percent)
            time.sleep(0.1)
        light.set_off()
        light.close()


if __name__ == "__main__":
    main()
