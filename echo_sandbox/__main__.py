import argparse
import logging

import uvicorn

from .app import create_app
from .config import ServerConfig


def main():
    config = ServerConfig.from_env()

    ap = argparse.ArgumentParser(description="Controllable HTTP echo server for resilience testing.")
    ap.add_argument("--host", default=config.host)
    ap.add_argument("--port", type=int, default=config.port)
    ap.add_argument("--scenario-file", default=config.scenario_file, help="YAML scenario definitions")
    args = ap.parse_args()

    config.host, config.port, config.scenario_file = args.host, args.port, args.scenario_file

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ssl = {}
    if config.enable_tls:
        ssl = {"ssl_certfile": config.cert_file, "ssl_keyfile": config.key_file}

    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level.lower(), **ssl)


if __name__ == "__main__":
    main()
