"""Run the proxy with uvicorn: ``python -m quota_proxy``."""

from __future__ import annotations

import uvicorn

from quota_proxy.core.config import settings


def main() -> None:
    uvicorn.run(
        "quota_proxy.main:app",
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
