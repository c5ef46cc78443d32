"""Application-wide configuration constants."""

import os
import platform
from pathlib import Path

# --- Identity ---
HOSTNAME = platform.node()
PLATFORM = platform.system().lower()  # "windows" | "darwin" | "linux"

DEV_MODE = os.environ.get("DEV_MODE", "false").lower() == "true"

# --- Networking ---
API_HOST = "0.0.0.0"
API_PORT = int(os.environ.get("LOCALBROWSER_PORT", "5000"))

DISCOVERY_PORT = 41234  # UDP
DISCOVERY_TIMEOUT = 2.0  # seconds
BROADCAST_ADDRESS = "255.255.255.255"
DISCOVERY_REQUEST = "DISCOVER_LOCALBROWSER_SERVER"
DISCOVERY_RESPONSE = "LOCALBROWSER_SERVER_HERE"

# --- Firewall ---
MANAGE_FIREWALL = os.environ.get(
    "LOCALBROWSER_FIREWALL", "true" if PLATFORM == "windows" else "false"
).lower() == "true"
FIREWALL_RULE_PREFIX = "LocalBrowserServer"
FIREWALL_COMMAND_TIMEOUT = 5  # seconds

# --- Served content ---
# Directory exposed by the server; the CLI argument takes precedence.
CONTENT_PATH = os.environ.get("CONTENT_PATH") or None

# 0 disables the cap / ceiling.
SEARCH_MAX_RESULTS = int(os.environ.get("LOCALBROWSER_SEARCH_LIMIT", "0"))
MAX_TEXT_BYTES = int(os.environ.get("LOCALBROWSER_MAX_TEXT_BYTES", "0"))

TEXT_EXTENSIONS = {".txt", ".csv"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

# --- Thumbnails ---
THUMBNAIL_SIZE = (200, 200)
THUMBNAIL_QUALITY = 80
THUMBNAIL_MAX_AGE = 604800  # one week

# --- Themes ---
THEMES_DIR = Path(__file__).parent / "themes"
THEMES = {"light", "dark"}
