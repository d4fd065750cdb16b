"""
Single-line exception logging.

Rule and store failures are logged as one structured record, with the
traceback flattened into the "exception" key, so a failing rule shows up
as a single line next to its rule_id.
"""
import sys
import traceback

def _exc_tuple(exc_info):
    if exc_info is True or exc_info is None:
        return sys.exc_info()
    if isinstance(exc_info, BaseException):
        return (type(exc_info), exc_info, exc_info.__traceback__)
    return exc_info

def format_exception(exc_info):
    """
    Render an exception and its traceback on one line.

    Args:
        exc_info: Exception instance, exc_info tuple, or True/None for the
            exception currently being handled

    Returns:
        Traceback with newlines replaced by " | ", or None without an exception
    """
    exc_type, exc_value, exc_tb = _exc_tuple(exc_info)
    if exc_type is None:
        return None
    trace = ''.join(traceback.format_exception(exc_type, exc_value, exc_tb))
    return trace.strip().replace('\n', ' | ')

def log_exception(logger, message, exc_info=None, **kwargs):
    """Log an error with its flattened traceback; error and error_type default from the exception."""
    exc_type, exc_value, exc_tb = _exc_tuple(exc_info)
    extra = dict(kwargs.pop('extra', {}))
    if exc_value is not None:
        extra.setdefault('error', str(exc_value))
        extra.setdefault('error_type', exc_type.__name__)
    extra['exception'] = format_exception((exc_type, exc_value, exc_tb))
    logger.error(message, extra=extra, **kwargs)
