"""Process entry point for the compliance API (`wvpp-serve`)."""

import os
from typing import Any, Dict

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def server_options() -> Dict[str, Any]:
    """uvicorn keyword arguments resolved from the environment."""
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": _flag("RELOAD"),
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "proxy_headers": _flag("PROXY_HEADERS", "true"),
    }
    workers = os.getenv("WEB_CONCURRENCY")
    if workers and not options["reload"]:
        options["workers"] = int(workers)
    for env_name, key in (("SSL_CERTFILE", "ssl_certfile"), ("SSL_KEYFILE", "ssl_keyfile")):
        path = os.getenv(env_name)
        if path:
            options[key] = path
    return options


def main() -> None:
    uvicorn.run("wvpdb.main:app", **server_options())


if __name__ == "__main__":
    main()
