from gradcheck.utils.logger import get_logger, logger, set_log_level

__all__ = ["get_logger", "logger", "set_log_level"]
