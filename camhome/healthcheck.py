#!/usr/bin/env python3
"""
Container healthcheck for the camhome service.

Polls the local /health endpoint (or /ready with --ready) and exits 0 when
the service answers 200, 1 otherwise.

Optional environment variables:
  - CAMHOME_PORT (default: 8000)
  - HEALTHCHECK_PATH (default: /health)
  - HEALTHCHECK_TIMEOUT (default: 5 seconds)
"""

import os
import sys
import urllib.error
import urllib.request
from typing import Mapping, Optional


DEFAULT_PORT = 8000
DEFAULT_HEALTHCHECK_PATH = "/health"
READY_PATH = "/ready"
DEFAULT_HEALTHCHECK_TIMEOUT = 5.0
ALLOWED_PATHS = {DEFAULT_HEALTHCHECK_PATH, READY_PATH}


def _load_timeout(environ: Mapping[str, str]) -> float:
    try:
        timeout = float(environ.get("HEALTHCHECK_TIMEOUT", DEFAULT_HEALTHCHECK_TIMEOUT))
    except ValueError:
        return DEFAULT_HEALTHCHECK_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_HEALTHCHECK_TIMEOUT


def _load_port(environ: Mapping[str, str]) -> int:
    try:
        port = int(environ.get("CAMHOME_PORT", DEFAULT_PORT))
    except ValueError:
        return DEFAULT_PORT
    return port if 1 <= port <= 65535 else DEFAULT_PORT


def healthcheck_url(environ: Optional[Mapping[str, str]] = None, ready: bool = False) -> str:
    """Build the loopback URL to poll.

    Only /health and /ready are accepted for HEALTHCHECK_PATH; anything else
    falls back to /health so the check never leaves the local service.
    """
    env = os.environ if environ is None else environ
    path = READY_PATH if ready else env.get("HEALTHCHECK_PATH", DEFAULT_HEALTHCHECK_PATH)
    if path not in ALLOWED_PATHS:
        print(f"Warning: Invalid HEALTHCHECK_PATH '{path}', using default", file=sys.stderr)
        path = DEFAULT_HEALTHCHECK_PATH
    return f"http://127.0.0.1:{_load_port(env)}{path}"


def check_health(environ: Optional[Mapping[str, str]] = None, ready: bool = False) -> bool:
    env = os.environ if environ is None else environ
    try:
        with urllib.request.urlopen(
            healthcheck_url(env, ready=ready), timeout=_load_timeout(env)
        ) as response:
            return response.status == 200
    except (urllib.error.URLError, TimeoutError, OSError):
        return False


def main() -> None:
    sys.exit(0 if check_health(ready="--ready" in sys.argv[1:]) else 1)


if __name__ == "__main__":
    main()
