import logging
import sys
import time

from pythonjsonlogger import jsonlogger

from .config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with service metadata."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record['service'] = settings.service_name
        log_record['environment'] = settings.environment
        log_record['timestamp'] = time.strftime(
            '%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)
        )
        # Cloud Logging maps this field onto the entry severity
        log_record['severity'] = record.levelname


def setup_logging():
    """Configure structured logging for the functions runtime."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(levelname)s %(service)s %(environment)s %(name)s %(message)s'))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)

    root_logger.addHandler(handler)

    # Set specific logger levels
    logging.getLogger('google').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
