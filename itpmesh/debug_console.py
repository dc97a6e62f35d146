"""
DebugConsole - routes converter messages to the "itpmesh" logger
"""
import logging

_log = logging.getLogger("itpmesh")


class DebugConsole:
    @staticmethod
    def log(message):
        """Print debug message"""
        _log.debug(message)

    @staticmethod
    def info(message):
        _log.info(message)

    @staticmethod
    def warning(message):
        """Non-fatal problem; processing continues with a partial result"""
        _log.warning(message)
