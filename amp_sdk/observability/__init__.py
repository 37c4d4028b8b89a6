from .logging import enable_debug_logging, log_event, logger
