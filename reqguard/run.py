"""Programmatic uvicorn entry point.

Usage:
    python -m reqguard.run
    reqguard                   # via pyproject.toml [project.scripts]

Runs a single worker: both protection stores live in process memory, so
extra workers would each enforce their own independent limits and reject
CSRF tokens issued by their siblings.
"""

from __future__ import annotations

import uvicorn

from reqguard.core.config import settings


def main() -> None:
    uvicorn.run(
        "reqguard.main:app",
        host=settings.app.host,
        port=settings.app.port,
        workers=1,
        log_config=None,
    )


if __name__ == "__main__":
    main()
