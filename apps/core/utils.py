# apps/core/utils.py

import json
import logging
from typing import Dict, List

from django.core.exceptions import ValidationError
from django.http import QueryDict

logger = logging.getLogger(__name__)


def read_payload(request) -> QueryDict:
    """
    Request body as a QueryDict, from JSON or form encoding

    JSON lists become repeated keys so getlist() works for both.
    """
    if request.content_type == 'application/json':
        try:
            body = json.loads(request.body or b'{}')
        except ValueError:
            logger.warning(f"⚠️ Malformed JSON body on {request.path}")
            raise ValidationError('Malformed JSON body', code='invalid')

        if not isinstance(body, dict):
            raise ValidationError('JSON body must be an object', code='invalid')

        payload = QueryDict(mutable=True)
        for key, value in body.items():
            if isinstance(value, list):
                payload.setlist(key, [_as_text(item) for item in value])
            else:
                payload[key] = _as_text(value)
        return payload

    return request.POST


def _as_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def form_error_message(form) -> str:
    """First error of a bound form, prefixed with the field label"""
    for name, errors in form.errors.items():
        if name == '__all__':
            return errors[0]
        label = form.fields[name].label if name in form.fields else name
        return f"{label}: {errors[0]}"
    return 'Invalid data'


def validation_messages(error: ValidationError) -> List[str]:
    return list(error.messages)


def split_ids(values) -> List[str]:
    """
    Normalizes a list of ids coming from a form

    Accepts repeated keys or comma separated strings; drops blanks and
    duplicates while keeping the order.
    """
    ids: List[str] = []
    for value in values:
        for item in str(value).split(','):
            item = item.strip()
            if item and item not in ids:
                ids.append(item)
    return ids


def user_initials(name: str) -> str:
    parts = [part for part in (name or '').split() if part]
    if not parts:
        return '?'
    if len(parts) == 1:
        return parts[0][:2].upper()
    return (parts[0][0] + parts[-1][0]).upper()


def role_badge(role: str) -> Dict[str, str]:
    """Label and color of a role badge"""
    colors = {
        'admin': '#EF4444',
        'manager': '#F59E0B',
        'user': '#3B82F6',
    }
    return {'role': role, 'color': colors.get(role, '#6B7280')}
