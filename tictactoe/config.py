"""Shared constants for the tic-tac-toe server. All protocol-wide configuration lives here."""

# --- Board ---
BOARD_CELLS = 9  # 3x3, row-major, cell 0 is top-left

# --- Sequence ceilings ---
MAX_TURN = 9             # ply index wraps 8 -> 0
MAX_MESSAGE_NUMBER = 27  # three full games; the 5-bit field could hold 31

# --- Framing (bytes) ---
MESSAGE_SIZE = 4   # one big-endian u32 per message
TOKEN_SIZE = 16    # opaque player identity exchanged during the handshake

# --- Networking ---
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 7878
IDLE_TIMEOUT_S = None  # seconds a connection may stall mid-read; None disables
