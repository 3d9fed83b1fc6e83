"""
Entry point for: python -m menuhub.signaling

Joins a hub's signaling channel in the hub role and logs every offer and
ICE candidate that client devices send. Useful for checking that devices
reach the relay before a real hub is running.
"""

import argparse
import time

from menuhub.common.config import Config
from menuhub.common.logger import setup_logger
from menuhub.signaling.messages import HUB_INBOUND, SignalingError
from menuhub.signaling.signaling import create_signaling_from_config

logger = setup_logger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch a MenuHub signaling channel")
    parser.add_argument("hub_id", help="Hub ID whose channel to join")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--restaurant", help="Restaurant ID (defaults to station.restaurant_id)")
    args = parser.parse_args()

    config = Config(args.config)
    restaurant_id = args.restaurant or config.restaurant_id
    if not restaurant_id:
        parser.error("no restaurant ID given and station.restaurant_id is not set")

    signaling = create_signaling_from_config(config)
    for event in HUB_INBOUND:
        signaling.on(event, lambda payload, event=event: logger.info("%s: %s", event.value, payload))

    try:
        signaling.join_as_hub(args.hub_id, restaurant_id)
    except SignalingError as e:
        logger.error("Could not join signaling channel: %s", e)
        raise SystemExit(1)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Leaving signaling channel")
    finally:
        signaling.leave()


if __name__ == "__main__":
    main()
