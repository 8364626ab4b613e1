"""Configuration settings for the broker service."""

import os
from common.constants import BROKER_PORT, QUERY_TIMEOUT_SECONDS


BROKER_HOST = os.environ.get("CDN_BROKER_HOST", "0.0.0.0")

BROKER_LISTEN_PORT = int(os.environ.get("CDN_BROKER_PORT", str(BROKER_PORT)))

BROKER_QUERY_TIMEOUT_SECONDS = float(os.environ.get("CDN_QUERY_TIMEOUT_SECONDS", str(QUERY_TIMEOUT_SECONDS)))
