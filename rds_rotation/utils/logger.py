from pythonjsonlogger import jsonlogger
import logging
from datetime import datetime, timezone


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        log_record['level'] = record.levelname


def get_logger(log_level=logging.INFO):
    logger = logging.getLogger()
    # Warm Lambda containers call this on every invocation
    if not any(isinstance(handler.formatter, CustomJsonFormatter) for handler in logger.handlers):
        log_handler = logging.StreamHandler()
        format_str = '%(level)s %(timestamp)s  %(message)s'
        formatter = CustomJsonFormatter(format_str)
        log_handler.setFormatter(formatter)
        logger.addHandler(log_handler)
    logger.setLevel(log_level)
    return logger


def format_message(msg, db_instance_id=None):
    if db_instance_id:
        return f"[{db_instance_id}] {msg}"
    return msg


def log(level, msg, db_instance_id=None):
    """
    Log a message scoped to a database instance.

    The instance is both prefixed to the message and attached as the
    ``db_instance`` field of the JSON record.
    """
    extra = {'db_instance': db_instance_id} if db_instance_id else None
    logging.log(level, format_message(msg, db_instance_id), extra=extra)
