# mcp_gateway/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# cli/config.py sits two packages below the project root
project_root = Path(__file__).parent.parent.parent.resolve()

load_dotenv(dotenv_path=project_root / '.env', override=True)

# Gateway the CLI talks to
GATEWAY_CLI_API_BASE_URL = os.getenv("GATEWAY_CLI_API_BASE_URL", "http://127.0.0.1:8000")

# Admin API key for /admin/tokens
GATEWAY_CLI_ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")
