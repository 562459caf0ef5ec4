"""
Client constants and configuration.
"""

# Server endpoint
DEFAULT_SERVER_URL = 'ws://localhost:8080/ws'
ROOM_QUERY_PARAM = 'room'
PROTOCOL_VERSION = 1
CONNECT_TIMEOUT = 5.0       # Seconds allowed for the WebSocket handshake

# Input submission
INPUT_SEND_INTERVAL_MS = 25.0   # 40 Hz, independent of sensor frame rate
INPUT_DEADZONE = 0.02           # Normalized offset below which input is zero
INPUT_MAX_RADIUS = 0.25         # Normalized offset mapped to full deflection
INPUT_ANCHOR = (0.5, 0.5)       # Screen-center in normalized coordinates

# Interpolation
RENDER_DELAY_MS = 100.0     # Render this far in the past to absorb jitter
MIN_SNAPSHOT_DT_MS = 1.0    # Guard for snapshots received at the same instant

# Receive loop
RECV_DRAIN_LIMIT = 256      # Max inbound messages handled per poll

# Entity defaults for fields older servers may omit
DEFAULT_PLAYER_RADIUS = 25.0
DEFAULT_STAMINA = 100.0
DEFAULT_ORB_SIZE = 1.0

# Rendering
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
RENDER_FPS = 60
