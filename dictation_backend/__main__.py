from __future__ import annotations

import logging

import uvicorn

from dictation_backend.internal_core import load_config


def main() -> None:
    cfg = load_config()
    logging.basicConfig(
        level=getattr(logging, cfg.SCRIBE_LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "starting host=%s port=%s base_url=%s", cfg.SCRIBE_HOST, cfg.SCRIBE_PORT, cfg.base_url()
    )
    uvicorn.run(
        "dictation_backend.api.main:app",
        host=cfg.SCRIBE_HOST,
        port=cfg.SCRIBE_PORT,
        log_level=cfg.SCRIBE_LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
