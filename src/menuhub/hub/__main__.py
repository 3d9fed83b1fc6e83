"""
Entry point for: python -m menuhub.hub

Runs the Hub Station: local order relay, cloud sync and network monitor.
"""

import argparse
import time

from menuhub.common.config import Config
from menuhub.common.logger import setup_logger
from menuhub.hub.station import HubStation
from menuhub.hub.store import OrderStore
from menuhub.hub.sync_manager import CloudSyncManager
from menuhub.status.network_monitor import NetworkMonitor

logger = setup_logger(__name__)


def build_station(config: Config) -> HubStation:
    """Wire a station from config."""
    store = OrderStore(config.get("station.database"))
    monitor = NetworkMonitor(
        cloud_url=config.cloud_url,
        health_path=config.get("cloud.health_path", "/"),
        check_interval_online=config.get("network.check_interval_online", 30),
        check_interval_offline=config.get("network.check_interval_offline", 10),
    )
    sync_manager = CloudSyncManager(
        store,
        base_url=config.cloud_url,
        api_key=config.cloud_api_key,
        interval=config.get("station.sync_interval", 30),
        timeout=config.get("cloud.request_timeout", 10),
    )
    return HubStation(
        store,
        port=config.station_port,
        bind_host=config.get("station.bind_host", "*"),
        client_timeout=config.get("station.client_timeout", 90),
        sync_manager=sync_manager,
        network_monitor=monitor,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="MenuHub Hub Station")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--port", type=int, help="Port devices connect to")
    parser.add_argument("--db", help="Path to the station SQLite database")
    args = parser.parse_args()

    config = Config(args.config)
    if args.port:
        config.set("station.port", args.port)
    if args.db:
        config.set("station.database", args.db)

    logger.info("[Station] Initializing Menu Hub Station...")
    station = build_station(config)
    station.network_monitor.start()
    station.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("[Station] Shutting down")
    finally:
        station.stop()
        station.network_monitor.stop()
        station.store.close()


if __name__ == "__main__":
    main()
