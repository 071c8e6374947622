#!/usr/bin/env python3
"""
Redirect and auth tracing example

Requests a URL through an instrumented httpx client and prints every
lifecycle event of the exchange: the initial request, each redirect hop,
authentication challenges and the final response.

Usage:
    python examples/trace_redirects.py [URL]

Environment Variables:
    REQDEBUG_CAPTURE_BODY - Optional, set to "false" to omit response bodies
    REQDEBUG_MAX_BODY_CHARS - Optional, truncate captured bodies
"""

import json
import logging
import sys

import httpx

from reqdebug import get_config, instrument, mask_records

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_URL = "https://httpbin.org/redirect/2"


def main() -> int:
    url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL
    config = get_config()

    with instrument(httpx.Client(follow_redirects=True), config=config) as client:
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Request to {url} failed: {e}")
            return 1

        logger.info(f"Final status {response.status_code} after {len(response.history)} redirect(s)")
        for record in mask_records(client.log.records()):
            print(json.dumps(record, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
