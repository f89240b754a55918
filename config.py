# Configuration for the Camera Status BLE controller

# ==============================================================================
# BLE Scan Configuration
# ==============================================================================

# A single scan stops by itself after this many seconds.
SCAN_TIMEOUT = 25.0

# Interval between two periodic scans.
PERIODIC_SCAN_INTERVAL = 60.0

# Scanning stops early once this many cameras are in the device table.
EXPECTED_CAMERA_COUNT = 2

# Name fragments that hint at a camera. Only used for debug logging of
# advertisements no identifier accepted.
CAMERA_NAME_HINTS = ["BJ8A", "E-M5", "GR_", "Camera", "Olympus", "Ricoh"]

# ==============================================================================
# Known Cameras (Hardcoded based on Reverse Engineering)
# ==============================================================================

# Olympus E-M5 Mark III
EM5_CAMERA_NAMES = [
    "BJ8A15412",              # Serial number as advertised
    "E-M5MKIII-P-BJ8A15412",  # Alternative name format
]
EM5_CAMERA_IDS = []

# Name fragments the power-on sequence looks for while re-scanning.
EM5_POWER_ON_NAMES = ["BJ8A15412", "E-M5MKIII"]

# Ricoh GR
RICOH_CAMERA_NAMES = ["GR_5A9E88"]
RICOH_CAMERA_IDS = ["10763D9D-22B1-A168-8B62-2CA083E3BE4F"]

# ==============================================================================
# EM5 Power-On Configuration
# ==============================================================================

# The characteristic known to accept the authentication and power-on commands.
EM5_WORKING_CHAR_UUID = "82f949b4-f5dc-4cf3-ab3c-fd9fd4017b68"

# Fixed vendor passcode of the camera.
EM5_PASSCODE = "258967"

MAX_CONNECTION_ATTEMPTS = 5
CONNECT_ATTEMPT_TIMEOUT = 10.0  # seconds to find the camera while re-scanning

# Backoff after an attempt timed out: min(step * attempt, max)
SCAN_RETRY_BACKOFF_STEP = 1.0
SCAN_RETRY_BACKOFF_MAX = 5.0

# Backoff after the host reported a failed connect: min(step * attempt, max)
CONNECT_RETRY_BACKOFF_STEP = 0.5
CONNECT_RETRY_BACKOFF_MAX = 2.0

# Delay before retrying after an unexpected disconnect.
DISCONNECT_RETRY_DELAY = 0.5

# The camera needs time to process the authentication before the next command.
AUTH_SETTLE_DELAY = 2.5

# Wait after the power-on command before dropping the link.
POWER_ON_DISCONNECT_DELAY = 1.0

# The power-on is already acknowledged, a missing disconnect event still counts as success.
DISCONNECT_TIMEOUT = 3.0

# How long a terminal power-on status stays visible before a new request is allowed.
POWER_ON_STATUS_HOLD = 5.0
UNSUPPORTED_STATUS_HOLD = 3.0

# Timeout handed to BleakClient for a single connect.
BLE_CONNECT_TIMEOUT = 20.0

# While the adapter is not ready it is probed again at this interval.
ADAPTER_PROBE_INTERVAL = 60.0

# ==============================================================================
# WIFI Configuration
# ==============================================================================

WIFI_CHECK_INTERVAL = 5.0

# Fragments of a camera name that also appear in the camera's WiFi SSID.
CAMERA_WIFI_IDENTIFIERS = ["BJ8A15412", "E-M5MKIII", "GR_5A9E88"]
