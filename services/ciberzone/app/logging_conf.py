import logging
import time

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        # el formato pre-carga timestamp y level en None
        log_record["timestamp"] = time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created))
        log_record["level"] = record.levelname
        log_record.setdefault("service", getattr(record, 'service', 'ciberzone'))
        # Correlation id travels in the logging extra
        cid = getattr(record, 'cid', None)
        if cid:
            log_record["cid"] = cid


def configure_logging(service_name: str = "ciberzone") -> logging.Logger:
    logger = logging.getLogger(service_name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
