import logging
from .middleware import get_current_request_id


class RequestIDFilter(logging.Filter):
    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = get_current_request_id()
        return True
