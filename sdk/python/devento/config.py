"""Client configuration resolved once from arguments and environment"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_BASE_URL = "https://api.devento.ai"
API_PREFIX = "/api/v2"

ENV_API_KEY = "DEVENTO_API_KEY"
ENV_BASE_URL = "DEVENTO_BASE_URL"
ENV_BOX_TIMEOUT = "DEVENTO_BOX_TIMEOUT"
ENV_COMMAND_TIMEOUT = "DEVENTO_COMMAND_TIMEOUT"
ENV_DEBUG = "DEVENTO_DEBUG"


@dataclass
class ClientConfig:
    """Settings shared by every call a client makes.

    Timeouts are in seconds. ``box_timeout`` bounds ``wait_until_ready`` and
    ``command_timeout`` is the default deadline for ``BoxHandle.run``.
    """
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    http_timeout: float = 30.0
    box_timeout: float = 60.0
    command_timeout: float = 300.0
    poll_interval: float = 1.0
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Build a config from ``DEVENTO_*`` variables, falling back to defaults"""
        env = os.environ if environ is None else environ
        config = cls(
            api_key=env.get(ENV_API_KEY) or None,
            base_url=env.get(ENV_BASE_URL) or DEFAULT_BASE_URL,
            debug=env.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"),
        )
        config.box_timeout = _float_env(env, ENV_BOX_TIMEOUT, config.box_timeout)
        config.command_timeout = _float_env(env, ENV_COMMAND_TIMEOUT, config.command_timeout)
        return config


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def enable_debug_logging() -> None:
    """Send ``devento`` debug records to stderr"""
    logger = logging.getLogger("devento")
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        if getattr(handler, "_devento_debug", False):
            return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._devento_debug = True
    logger.addHandler(handler)
