#!/usr/bin/env python3
"""
Register the IPN URL with Pesapal and print the notification id.

Put the printed id in PESAPAL_IPN_ID.

    python scripts/register_ipn.py https://example.com/api/payments/ipn
"""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wedfund.config import get_gateway_config
from wedfund.errors import WeddingFundError
from wedfund.logging_config import configure_logging
from wedfund.services.gateway_client import PesapalClient

logger = logging.getLogger(__name__)


async def register(url: str, notification_type: str) -> int:
    client = PesapalClient(get_gateway_config())
    try:
        ipn_id = await client.register_ipn(url, notification_type=notification_type)
    except WeddingFundError as e:
        logger.error(f"IPN registration failed: {e.message}")
        return 1

    print(f"PESAPAL_IPN_ID={ipn_id}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("url", help="Public URL of the IPN endpoint")
    parser.add_argument(
        "--notification-type",
        choices=["GET", "POST"],
        default="POST",
        help="HTTP method Pesapal uses for notifications",
    )
    args = parser.parse_args()

    configure_logging()
    return asyncio.run(register(args.url, args.notification_type))


if __name__ == "__main__":
    sys.exit(main())
