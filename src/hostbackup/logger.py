#!/usr/bin/env python3

"""Module which sets up logging for hostbackup."""

import logging
import sys
from typing import List

LOG_FORMAT = "[%(asctime)s][%(name)s][%(levelname)-7s] %(message)s"
LOG_FILE = "hostbackup.log"
DEFAULT_LOG_LEVEL = logging.DEBUG

file_handler = logging.FileHandler(LOG_FILE, delay=True)
stdout_handler = logging.StreamHandler(stream=sys.stdout)
formatter = logging.Formatter(LOG_FORMAT)

file_handler.setFormatter(formatter)
stdout_handler.setFormatter(formatter)

# the console only gets progress, the file keeps the issued commands as well
stdout_handler.setLevel(logging.INFO)
file_handler.setLevel(DEFAULT_LOG_LEVEL)

handlers: List[logging.Handler] = [file_handler, stdout_handler]

logger = logging.getLogger("hostbackup")

logger.setLevel(DEFAULT_LOG_LEVEL)

for handler in handlers:
    logger.addHandler(handler)
