"""Protean Engine runner for MarketPay.

Starts the Engine that processes events asynchronously in production:
- OutboxProcessor: polls outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes event handlers
  (payment and withdrawal notifications)

Usage:
    python src/server.py
    python src/server.py --test-mode   # process what is queued, then exit
"""

import argparse

from protean.server.engine import Engine

from marketpay.domain import marketpay
from marketpay.utils.logging import configure_logging


def run(test_mode: bool = False, debug: bool = False):
    marketpay.init()
    # Engine.run() owns its event loop
    Engine(marketpay, test_mode=test_mode, debug=debug).run()


def main():
    parser = argparse.ArgumentParser(description="MarketPay Engine runner")
    parser.add_argument("--test-mode", action="store_true", help="Drain pending messages once and exit")
    parser.add_argument("--debug", action="store_true", help="Log subscription activity")
    args = parser.parse_args()

    configure_logging()
    run(test_mode=args.test_mode, debug=args.debug)


if __name__ == "__main__":
    main()
