"""
Secrets loading for upstream APIs.

Importing this module loads config/secrets.env (or the file named by
$MARKETDASH_ENV_FILE) into the process environment. Variables already set
in the shell always win.

Usage:
    import marketdash.env_loader  # first import in the entry point
    from marketdash.env_loader import get_api_key

    key = get_api_key("FRED_API_KEY", required=True)
"""

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from marketdash.logging_config import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / "config" / "secrets.env"
ENV_FILE_VAR = "MARKETDASH_ENV_FILE"

# Keys reported (never printed) after loading
KNOWN_KEYS = ("FRED_API_KEY",)


def _default_env_file() -> Path:
    override = os.getenv(ENV_FILE_VAR)
    return Path(override) if override else DEFAULT_ENV_FILE


def load_environment_variables(env_file: Optional[Union[str, Path]] = None) -> bool:
    """
    Load a dotenv file without overriding existing variables.

    Args:
        env_file: File to load (default: $MARKETDASH_ENV_FILE or config/secrets.env)

    Returns:
        False when the file does not exist
    """
    path = Path(env_file) if env_file is not None else _default_env_file()
    if not path.is_file():
        logger.debug("No secrets file at %s", path)
        return False

    load_dotenv(path, override=False)
    present = [key for key in KNOWN_KEYS if os.getenv(key)]
    logger.debug("Loaded secrets from %s (keys present: %s)", path, ", ".join(present) or "none")
    return True


_loaded = load_environment_variables()


def is_environment_loaded() -> bool:
    """Whether a secrets file was found at import time."""
    return _loaded


def get_api_key(key_name: str, required: bool = False) -> Optional[str]:
    """
    Read an API key from the environment. Empty values count as missing.

    Raises:
        ValueError: required=True and the key is missing
    """
    value = os.getenv(key_name) or None
    if value is None and required:
        raise ValueError(
            f"{key_name} is not set. Add it to {DEFAULT_ENV_FILE.relative_to(PROJECT_ROOT)} "
            f"or export {key_name}=your_key_here"
        )
    return value


__all__ = [
    "load_environment_variables",
    "is_environment_loaded",
    "get_api_key",
]
