import os

# Storage
STORE_DIR = os.environ.get("STORE_DIR", os.path.join(os.getcwd(), "data"))
STORE_KEY_PREFIX = os.environ.get("STORE_KEY_PREFIX", "campus_safety_")
STORE_LATENCY_MS = int(os.environ.get("STORE_LATENCY_MS", "100"))

# Oracle (Bedrock)
BEDROCK_MODEL = os.environ.get("BEDROCK_MODEL", "us.anthropic.claude-3-7-sonnet-20250219-v1:0")
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
ORACLE_MAX_TOKENS = int(os.environ.get("ORACLE_MAX_TOKENS", "1000"))
ORACLE_RETRIES = int(os.environ.get("ORACLE_RETRIES", "3"))
ORACLE_INITIAL_DELAY = float(os.environ.get("ORACLE_INITIAL_DELAY", "1.0"))

# Feed
DEFAULT_WINDOW_HOURS = float(os.environ.get("DEFAULT_WINDOW_HOURS", "24"))

# API
API_NAME = os.environ.get("API_NAME")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
