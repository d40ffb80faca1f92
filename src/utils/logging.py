import logging

NOISY_FRAGMENTS = ("/healthz", "heartbeat", "phx_reply")


class HealthCheckFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return not any(fragment in msg for fragment in NOISY_FRAGMENTS)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    for logger_name in [
        "tornado.access",
        "streamlit.web.server",
        "realtime",
        "httpx",
    ]:
        logger = logging.getLogger(logger_name)
        logger.addFilter(HealthCheckFilter())
