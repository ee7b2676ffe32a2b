"""Run an API with uvicorn: ``python -m figures_store [orders|inventory]``."""

import os
import sys

import uvicorn

APPS = {
    "orders": ("figures_store.main:app", "8000"),
    "inventory": ("figures_store.inventory_api:app", "9001"),
}


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    target, default_port = APPS[argv[0] if argv else "orders"]
    uvicorn.run(
        target,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", default_port)),
        workers=int(os.getenv("UVICORN_WORKERS", "1")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
