import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if level != "DEBUG":
        # psycopg_pool logs every connection it opens at INFO
        logging.getLogger("psycopg.pool").setLevel(logging.WARNING)
