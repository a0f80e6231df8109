# Default variables
DEFAULT_RPC_URL = "https://evmrpc-testnet.0g.ai"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY_SEC = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_LOG_LEVEL = "info"
DEFAULT_AUTO_DEPOSIT = False
DEFAULT_AUTO_DEPOSIT_AMOUNT = 0.1

MAX_MESSAGE_LENGTH = 100_000

STATE_DIR_NAME = ".zerogkit"
STATE_FILE_NAME = "state.json"

FALLBACK_RESPONSE = "I apologize, but I couldn't generate a response. Please try again."
