import logging
import os
import streamlit as st

logger = logging.getLogger(__name__)


def load_env_vars():
    try:
        items = list(st.secrets.items())
    except FileNotFoundError:
        logger.info("No Streamlit secrets file found, using environment only")
        return
    for k, v in items:
        if isinstance(v, (str, int, float, bool)):
            os.environ.setdefault(k, str(v))
