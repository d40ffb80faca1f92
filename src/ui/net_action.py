import logging
import time
import streamlit as st
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def net_action(text: str):
    started = time.monotonic()
    with st.spinner(text, show_time=True):
        try:
            yield
        finally:
            logger.info("%s took %.2fs", text.rstrip("."), time.monotonic() - started)
