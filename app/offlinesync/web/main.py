from __future__ import annotations

from fastapi import FastAPI

from offlinesync.core.config import load_config
from offlinesync.storage.db import init_db
from offlinesync.web.api import router as api_router
from offlinesync.web.security import NetworkAllowlistMiddleware, get_allowed_nets


def build_app() -> FastAPI:
    cfg = load_config()
    init_db(cfg.database.path)

    api = FastAPI(title="offlinesync", version="0.1.0")
    api.add_middleware(NetworkAllowlistMiddleware, allowed_nets=get_allowed_nets())

    api.include_router(api_router)
    return api


def main():
    import uvicorn

    cfg = load_config()
    init_db(cfg.database.path)

    from offlinesync.core.logging_setup import setup_logging

    setup_logging(cfg.logging.level, cfg.logging.file)

    uvicorn.run(
        build_app(),
        host=cfg.web_bind_host,
        port=cfg.web_port,
        log_level=cfg.logging.level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
