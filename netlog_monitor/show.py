# show.py
import argparse
import logging
import sys

from .backends import BucketStoreError
from .monitor import load_config, open_store

logger = logging.getLogger(__name__)


def main():
    """Prints every stored device and the hosts it requested, without consuming them."""
    parser = argparse.ArgumentParser(description="Show the devices recorded by the network log monitor")
    parser.add_argument("-c", "--config", help="The settings file to use")
    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        store = open_store(load_config(args.config))
    except (BucketStoreError, ValueError) as e:
        logger.error(f"Unable to open the store: {e}")
        sys.exit(1)

    with store:
        snapshot = store.snapshot(reset=False)
        for device in store.devices():
            seen = device.at.isoformat(sep=" ") if device.at else "never"
            print(f"{device.name}  {device.mac}  {device.ip}  last seen {seen}")
            for host, visit in sorted(snapshot.get(device, {}).items()):
                print(f"    {host}  x{len(visit.times)}")


if __name__ == "__main__":
    main()
