import os
from dotenv import load_dotenv

from volumebot.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# Bot configuration
BOT_TOKEN = os.getenv("TG_BOT_TOKEN")

# Solana RPC configuration
SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "")
SOLANA_WS_URL = os.getenv("SOLANA_WS_URL", "")

# Main wallet used to fund trader wallets (base58 encoded, optional)
MAIN_WALLET_PRIVATE_KEY = os.getenv("PRIVATE_KEY")

# External trade APIs
JUPITER_API_URL = os.getenv("JUPITER_API_URL", "https://quote-api.jup.ag/v6")
PUMPPORTAL_TRADE_URL = os.getenv("PUMPPORTAL_TRADE_URL", "https://pumpportal.fun/api/trade-local")
COINGECKO_PRICE_URL = os.getenv(
    "COINGECKO_PRICE_URL",
    "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
)
FALLBACK_SOL_PRICE_USD = float(os.getenv("FALLBACK_SOL_PRICE_USD", "230"))
HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "15"))  # seconds

# Wallet storage
WALLET_STORAGE_PATH = os.getenv("WALLET_STORAGE_PATH", "data/trader_wallets.json")
# Optional passphrase; when set, trader keys are encrypted at rest
WALLET_STORAGE_PASSPHRASE = os.getenv("WALLET_STORAGE_PASSPHRASE")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Telegram conversation timeout (seconds)
CONVERSATION_TIMEOUT = int(os.getenv("CONVERSATION_TIMEOUT", "1800"))

# Confirmation configuration (seconds unless noted)
CONFIRMATION_COMMITMENT = os.getenv("CONFIRMATION_COMMITMENT", "confirmed")
CONFIRMATION_TIMEOUT = float(os.getenv("CONFIRMATION_TIMEOUT", "45"))
STATUS_CHECK_INTERVAL = float(os.getenv("STATUS_CHECK_INTERVAL", "2"))
MAX_BLOCK_HEIGHT_AGE = int(os.getenv("MAX_BLOCK_HEIGHT_AGE", "150"))  # blocks
BLOCK_HEIGHT_REFRESH_INTERVAL = float(os.getenv("BLOCK_HEIGHT_REFRESH_INTERVAL", "1"))
MIN_RETRY_AFTER = float(os.getenv("MIN_RETRY_AFTER", "2"))

# Trade cycle configuration
WALLET_GROUP_SIZE = int(os.getenv("WALLET_GROUP_SIZE", "5"))
WALLET_STAGGER_DELAY = float(os.getenv("WALLET_STAGGER_DELAY", "1"))
SELL_SETTLE_DELAY = float(os.getenv("SELL_SETTLE_DELAY", "5"))

# Session configuration
MIN_ROUND_INTERVAL = float(os.getenv("MIN_ROUND_INTERVAL", "15"))
MAX_ROUND_INTERVAL = float(os.getenv("MAX_ROUND_INTERVAL", "45"))
ROUND_FAILURE_BACKOFF = float(os.getenv("ROUND_FAILURE_BACKOFF", "5"))

# Trade defaults
DEFAULT_TRADE_AMOUNT_USD = 0.01
DEFAULT_SLIPPAGE_BPS = 100  # 1%
DEFAULT_PRIORITY_FEE_SOL = 0.001
DEFAULT_SOL_PER_WALLET = 0.01

# Well-known mints
SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

# Validation constants
MIN_TRADE_AMOUNT_USD = 0.001
MAX_TRADE_AMOUNT_USD = 1000.0
MIN_TRADER_WALLETS = 1
MAX_TRADER_WALLETS = 100


def require_env(name: str) -> str:
    """
    Return a required environment variable.

    Raises:
        ConfigurationError: If the variable is missing or empty
    """
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"No {name} found in environment variables")
    return value


def websocket_url_for(rpc_url: str) -> str:
    """Derive the websocket endpoint from an HTTP RPC endpoint."""
    if SOLANA_WS_URL:
        return SOLANA_WS_URL
    if rpc_url.startswith("https://"):
        return "wss://" + rpc_url[len("https://"):]
    if rpc_url.startswith("http://"):
        return "ws://" + rpc_url[len("http://"):]
    return rpc_url


# Conversation states enum values
class ConversationState:
    PLATFORM = 0
    TOKEN_ADDRESS = 1
    TRADE_AMOUNT = 2
    PRIORITY_FEE = 3
    SLIPPAGE = 4
    DURATION = 5
    CONFIRM = 6


# Callback query prefixes
class CallbackPrefix:
    PLATFORM = "platform_"
    PRIORITY_FEE = "pf_"
    SLIPPAGE = "slippage_"
    DURATION = "dur_"
    CONFIRM_START = "confirm_start"
    CONFIRM_CANCEL = "confirm_cancel"
    STOP_BOT = "stop_bot"


# Wizard choices
PRIORITY_FEE_CHOICES = [
    ("Very Low (0.0001)", 0.0001),
    ("Low (0.0005)", 0.0005),
    ("Medium (0.001)", 0.001),
    ("High (0.002)", 0.002),
]
SLIPPAGE_CHOICES = [5, 10, 15]  # percent
DURATION_CHOICES = [6, 12, 24]  # hours
