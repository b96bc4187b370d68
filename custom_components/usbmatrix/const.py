"""Constants for the USB matrix HomeAssistant integration."""

DOMAIN = "usbmatrix"

# DEFAULTS
DEFAULT_TCP_PORT = 23               # fixed control port of the matrix
DEFAULT_FRAME = "00"                # frame number (two digits) addressed by every command
DEFAULT_DEVICE_TYPE = 1
DEFAULT_POLL_INTERVAL = 4           # seconds;  How often the full crosspoint status is re-queried while connected
DEFAULT_MIN_RECONNECT_DELAY = 2     # seconds;
DEFAULT_MAX_RECONNECT_DELAY = 60    # seconds;
CONNECTION_TEST_TIMEOUT_TCP = 5     # seconds

MAX_BUFFER_LENGTH = 2048            # bytes; receive buffer is flushed when a line grows beyond this
READ_CHUNK_SIZE = 1024

# Wire format
LINE_DELIMITER = 13                 # carriage return
RESPONSE_HEADER = b"$$"
CHECKSUM_PREFIX = "//"
PLAIN_PREFIX = "\\"
CHECKSUM_FORCED_BITS = 0b01000000

# Status byte decoding
STATUS_VALID_BIT = 0b10000000
STATUS_UNASSIGNED = 0xFF
STATUS_DISCONNECTED_BITS = 0b1100000
STATUS_INPUT_MASK = 0b1111

# Crosspoint / selection sentinels
UNASSIGNED = 0
NOTHING_SELECTED = -2
DESELECTED = 0xFFFF

# Indicators the presentation layer re-evaluates
FEEDBACK_ROUTE = "route"
FEEDBACK_SOURCE_SELECTED = "sourceSelected"
FEEDBACK_DESTINATION_SELECTED = "destinationSelected"

# Config entry keys
CONF_HOST = "host"
CONF_DEVICE_TYPE = "device_type"
CONF_FRAME = "frame"
CONF_TCP_PORT = "tcp_port"
CONF_POLL_INTERVAL = "poll_interval"
CONF_RECONNECT_DELAY = "reconnect_delay"
CONF_MAX_RECONNECT_DELAY = "max_reconnect_delay"

DEVICE_TYPE_NAMES = {
    1: "MU-88",
    2: "MXU-88",
    3: "DVR 16x16",
    4: "MXCORE 32X32",
}
