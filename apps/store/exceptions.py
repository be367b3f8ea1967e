# apps/store/exceptions.py

import logging
from contextlib import contextmanager
from enum import Enum

from django.db import (
    DatabaseError, DataError, IntegrityError, InterfaceError, OperationalError
)

logger = logging.getLogger(__name__)


class StoreErrorKind(str, Enum):
    """Closed set of failures the document store can report"""

    NOT_FOUND = 'not-found'
    ALREADY_EXISTS = 'already-exists'
    INVALID_ARGUMENT = 'invalid-argument'
    PERMISSION_DENIED = 'permission-denied'
    UNAVAILABLE = 'unavailable'
    UNKNOWN = 'unknown'


class StoreError(Exception):
    """Read/write failure raised by the document store"""

    def __init__(self, kind: StoreErrorKind, message: str = ''):
        self.kind = kind
        self.message = message or kind.value
        super().__init__(f"[{kind.value}] {self.message}")


@contextmanager
def translate_database_errors(operation: str):
    """
    Maps django.db exceptions raised inside the block to StoreError

    Args:
        operation: Short description used in logs (e.g. "update tasks/abc")
    """
    try:
        yield
    except StoreError:
        raise
    except IntegrityError as e:
        logger.error(f"❌ Store integrity error during {operation}: {e}")
        raise StoreError(StoreErrorKind.ALREADY_EXISTS, str(e)) from e
    except DataError as e:
        logger.error(f"❌ Store rejected data during {operation}: {e}")
        raise StoreError(StoreErrorKind.INVALID_ARGUMENT, str(e)) from e
    except (OperationalError, InterfaceError) as e:
        logger.error(f"❌ Store unavailable during {operation}: {e}")
        raise StoreError(StoreErrorKind.UNAVAILABLE, str(e)) from e
    except DatabaseError as e:
        logger.error(f"❌ Store failure during {operation}: {e}")
        raise StoreError(StoreErrorKind.UNKNOWN, str(e)) from e
