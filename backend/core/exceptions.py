"""
Ledger error taxonomy and its REST rendering.

NotFound / InvalidState / ValidationError are surfaced to the caller as-is.
Conflict is the only retryable kind: a concurrent writer won a race on the
same row, or a generated code collided with an existing one.
"""
import logging
from functools import wraps

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger('backend.core')


class LedgerError(APIException):
    """Base class for errors raised by the ledger engine"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Ledger operation failed.'
    default_code = 'ledger_error'

    @property
    def kind(self):
        return self.default_code

    @property
    def message(self):
        return str(self.detail)


class NotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class InvalidState(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The requested transition is not allowed.'
    default_code = 'invalid_state'


class Conflict(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A concurrent update won the race; retry the request.'
    default_code = 'conflict'


class ValidationError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'validation_error'


def is_unique_violation(exc):
    """True when an IntegrityError comes from a unique constraint (SQLite or PostgreSQL wording)"""
    return 'unique' in str(exc).lower()


def retry_on_conflict(attempts=None):
    """
    Decorator re-running a whole unit of work when it raises Conflict.

    The wrapped function must open its own atomic block so every attempt
    re-reads counts and state from scratch. After the last attempt the
    Conflict is re-raised to the caller.

    Usage:
        @retry_on_conflict()
        def create_issue(...):
            with transaction.atomic():
                ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_attempts = attempts or getattr(settings, 'LEDGER_CONFLICT_RETRIES', 3)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except Conflict as e:
                    if attempt >= max_attempts:
                        logger.warning(f"{func.__name__} gave up after {attempt} conflicting attempts: {e.message}")
                        raise
                    logger.info(f"{func.__name__} conflict on attempt {attempt}/{max_attempts}: {e.message} - retrying")
                    attempt += 1
        return wrapper
    return decorator


def ledger_exception_handler(exc, context):
    """DRF exception handler rendering ledger errors as {'error': ..., 'kind': ...}"""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, LedgerError):
        response.data = {'error': exc.message, 'kind': exc.kind}
    return response
