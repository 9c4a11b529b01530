"""
Subscription error normalization.

Upstream failures reach the bridge in several shapes: exceptions raised by
the transport, arrays of GraphQL error records from an ``error`` frame, a
single record, or anything else a server might send. They are collapsed into
one :class:`SubscriptionError` so consumers never see the raw shape.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from ..exceptions import SubscriptionError

MESSAGE_DELIMITER = "; "


class ErrorShape(str, Enum):
    """Known upstream error shapes, in matching order."""

    NATIVE = "native"
    RECORDS = "records"
    RECORD = "record"
    OTHER = "other"


def classify_error_shape(error: Any) -> ErrorShape:
    """Return the first shape ``error`` matches."""
    if isinstance(error, BaseException):
        return ErrorShape.NATIVE
    if isinstance(error, Sequence) and not isinstance(error, (str, bytes, bytearray)):
        return ErrorShape.RECORDS
    if isinstance(error, Mapping) and "message" in error:
        return ErrorShape.RECORD
    return ErrorShape.OTHER


def _dump(value: Any) -> str:
    try:
        return json.dumps(value, default=repr, sort_keys=True)
    except (TypeError, ValueError):
        return repr(value)


def _record_message(record: Any) -> str:
    if isinstance(record, Mapping):
        message = record.get("message")
        if message is not None and str(message):
            return str(message)
    return _dump(record)


def normalize_subscription_error(error: Any) -> SubscriptionError:
    """
    Collapse any upstream error value into a :class:`SubscriptionError`.

    Matching order:

    1. An exception. A ``SubscriptionError`` passes through unchanged; any
       other exception is wrapped, keeping it as ``original_error``.
    2. A sequence of records. Their ``message`` fields are joined with
       ``"; "``; a record without a message contributes its JSON dump.
    3. A mapping with a ``message`` field. The field becomes the message.
    4. Anything else. Its JSON dump becomes the message.

    The resulting ``message`` is never empty.
    """
    shape = classify_error_shape(error)

    if shape == ErrorShape.NATIVE:
        if isinstance(error, SubscriptionError):
            return error
        message = str(error) or type(error).__name__
        return SubscriptionError(message, original_error=error)

    if shape == ErrorShape.RECORDS:
        message = MESSAGE_DELIMITER.join(_record_message(record) for record in error)
    elif shape == ErrorShape.RECORD:
        message = _record_message(error)
    else:
        message = _dump(error)

    return SubscriptionError(message or _dump(error), original_error=error)
