import logging

import pytest


@pytest.fixture(autouse=True)
def reset_root_logging():
    """Drop the console and file handlers installed by utils.setup_logging."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.WARNING)
    logging.captureWarnings(False)
