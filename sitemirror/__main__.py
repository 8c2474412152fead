import logging

import uvicorn

from sitemirror.config import load_proxy_config


def main() -> None:
    config = load_proxy_config()
    logging.getLogger("uvicorn.error").setLevel(config.log_level.upper())
    uvicorn.run(
        "sitemirror.server:app",
        host=config.listen_host,
        port=config.listen_port,
        log_level=config.log_level,
    )


if __name__ == "__main__":
    main()
