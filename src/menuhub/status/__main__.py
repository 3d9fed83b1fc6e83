"""
Entry point for: python -m menuhub.status

Connects to the local hub (if one answers), checks the cloud, and prints
the resulting connection mode. With --watch, prints every mode change.
"""

import argparse
import time

from menuhub.common.config import Config
from menuhub.hub.client import LocalHubClient
from menuhub.status.connection_status import ConnectionStatusMonitor, format_badge, format_status
from menuhub.status.network_monitor import NetworkMonitor


def main() -> None:
    parser = argparse.ArgumentParser(description="Show MenuHub connection status")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--restaurant", help="Restaurant ID to register with the hub")
    parser.add_argument("--badge", action="store_true", help="Print the compact badge only")
    parser.add_argument("--watch", action="store_true", help="Keep running and print changes")
    args = parser.parse_args()

    config = Config(args.config)
    render = format_badge if args.badge else format_status

    hub_client = LocalHubClient(
        config.get("hub_client.state_file"),
        port=int(config.get("hub_client.port", 3001)),
        candidate_hosts=config.get("hub_client.candidate_hosts"),
        connect_timeout=float(config.get("hub_client.connect_timeout", 2.0)),
        reconnect_interval=float(config.get("hub_client.reconnect_interval", 5.0)),
        ping_interval=float(config.get("hub_client.ping_interval", 30.0)),
        ping_timeout=float(config.get("hub_client.ping_timeout", 90.0)),
    )
    network = NetworkMonitor(
        cloud_url=config.cloud_url,
        health_path=config.get("cloud.health_path", "/"),
        check_interval_online=config.get("network.check_interval_online", 30),
        check_interval_offline=config.get("network.check_interval_offline", 10),
    )
    monitor = ConnectionStatusMonitor(hub_client, network)

    network.check_now()
    restaurant_id = args.restaurant or config.restaurant_id
    if restaurant_id:
        hub_client.connect(restaurant_id)

    print(render(monitor.start()))

    if not args.watch:
        hub_client.close()
        return

    monitor.on("changed", lambda status: print(render(status)))
    network.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()
        network.stop()
        hub_client.close()


if __name__ == "__main__":
    main()
