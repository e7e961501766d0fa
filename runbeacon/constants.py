DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_BRANCH = "main"
DEFAULT_TOKEN_INPUT = "unique_id"
DEFAULT_LOOKBACK = 100
LABEL_PREFIX = "unique-id-"
TERMINAL_STATE = "completed"
MAX_TRACKED = 1024
