from aiohttp import web

from .log import configure_logging
from .server import build_application
from .settings import load_fetcher_config


def main() -> None:
    config = load_fetcher_config()
    configure_logging(config.log_level)
    web.run_app(build_application(config), host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main()
