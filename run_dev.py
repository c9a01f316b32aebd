import uvicorn
from dotenv import load_dotenv
import os
from pathlib import Path
import logging

# Logging is configured before the application module is imported by uvicorn
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s RUN_DEV.PY - [%(levelname)s] - %(message)s'
)
logger = logging.getLogger("run_dev_script")

TRUTHY_VALUES = ["true", "1", "yes", "on", "t"]
APP_MODULE = "mcp_gateway.main:gateway_app"


def _masked(name: str) -> str:
    return '********' if os.getenv(name) else 'None'


if __name__ == "__main__":
    project_root = Path(__file__).parent.resolve()
    dotenv_path_explicit = project_root / ".env"

    logger.info(f"Project root: {project_root}")
    if dotenv_path_explicit.exists():
        load_dotenv(dotenv_path=dotenv_path_explicit, override=True)
        logger.info(f"Loaded .env from {dotenv_path_explicit}")
    else:
        logger.warning(f".env file NOT FOUND at: {dotenv_path_explicit}. "
                       "Relying on OS environment variables and pydantic-settings defaults.")

    # Secrets are only reported as set or unset
    for secret_name in ("TANGO_API_KEY", "GOOGLE_CLIENT_SECRET", "COOKIE_ENCRYPTION_KEY", "ADMIN_API_KEY"):
        logger.info(f"{secret_name}: {_masked(secret_name)}")
    logger.info(f"GOOGLE_CLIENT_ID: {os.getenv('GOOGLE_CLIENT_ID')}")
    logger.info(f"HOSTED_DOMAIN: {os.getenv('HOSTED_DOMAIN')}")
    logger.info(f"ALLOWED_AUTH_METHODS: {os.getenv('ALLOWED_AUTH_METHODS')}")
    logger.info(f"STORAGE_BACKEND: {os.getenv('STORAGE_BACKEND')}")
    logger.info(f"REDIS_HOST: {os.getenv('REDIS_HOST')}")
    logger.info(f"DEBUG_MODE: {os.getenv('DEBUG_MODE')}")

    host = os.getenv("DEV_SERVER_HOST", "127.0.0.1")
    port = int(os.getenv("DEV_SERVER_PORT", "8000"))
    uvicorn_log_level = os.getenv("DEV_SERVER_LOG_LEVEL", "info").lower()

    debug_mode_bool = os.getenv("DEBUG_MODE", "False").lower() in TRUTHY_VALUES
    reload_bool = os.getenv("DEV_SERVER_RELOAD", str(debug_mode_bool)).lower() in TRUTHY_VALUES

    logger.info(f"Starting Uvicorn server on {host}:{port} (reload={reload_bool}, log level={uvicorn_log_level})")
    logger.info(f"App module: {APP_MODULE}")

    uvicorn.run(
        APP_MODULE,
        host=host,
        port=port,
        log_level=uvicorn_log_level,
        reload=reload_bool
    )
