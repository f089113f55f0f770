# storefront_sync/utils/logger.py
import os, logging

LEVELS = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10, "NONE": 100}
LOG_LEVEL = LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), 20)

_logger = logging.getLogger("storefront_sync")
_logger.setLevel(LOG_LEVEL)

def log(level: str, msg: str):
    _logger.log(LEVELS[level], msg)

def debug(msg): log("DEBUG", msg)
def info(msg):  log("INFO", msg)
def warn(msg):  log("WARN", msg)
def error(msg): log("ERROR", msg)
