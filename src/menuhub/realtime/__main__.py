"""
Entry point for: python -m menuhub.realtime

Runs the broadcast relay that signaling parties connect to.
"""

import argparse
import time

from menuhub.common.config import Config
from menuhub.common.logger import setup_logger
from menuhub.realtime.zmq_relay import BroadcastRelay

logger = setup_logger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="MenuHub broadcast relay")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--publish-port", type=int, help="Port publishers connect to")
    parser.add_argument("--subscribe-port", type=int, help="Port subscribers connect to")
    args = parser.parse_args()

    config = Config(args.config)
    relay = BroadcastRelay(
        publish_port=args.publish_port or int(config.get("realtime.publish_port", 5560)),
        subscribe_port=args.subscribe_port or int(config.get("realtime.subscribe_port", 5561)),
    )
    relay.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down relay")
    finally:
        relay.stop()


if __name__ == "__main__":
    main()
