"""
Dispatch result interpretation.

``Scheduler.Dispatched`` carries a ``DispatchResult`` whose shape depends on
which client decoded it. ``interpret_dispatch_result`` maps every known shape
onto exactly one ``DispatchOutcome``; the checks run in a fixed order and the
first one that applies wins.
"""

import json
from typing import Any

from ..types import Bytes, DispatchOutcome


SUCCESS_WORDS = ('ok', 'success')
FAILURE_WORDS = ('err', 'error', 'fail', 'failure')


def to_json(value: Any) -> str:
    return json.dumps(value, default=_json_default, separators=(',', ':'))


def _json_default(value: Any) -> Any:
    binary = Bytes.coerce(value)
    if binary is not None:
        return binary.hex
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def format_dispatch_error(error: Any) -> str:
    """Renders a dispatch error (module error, token error, string...) as a readable message."""
    if error is None:
        return 'Unknown dispatch error'
    if isinstance(error, str):
        return error or 'Unknown dispatch error'
    if isinstance(error, bool):
        return 'true' if error else 'false'
    if isinstance(error, (list, tuple)):
        return ', '.join(format_dispatch_error(item) for item in error) or 'Unknown dispatch error'
    if isinstance(error, dict):
        kind = error.get('type')
        if isinstance(kind, str):
            for key in ('value', 'error', 'err', 'data'):
                payload = error.get(key)
                if payload is not None:
                    return f"{kind}: {to_json(payload)}"
            return kind
        if 'Module' in error or 'module' in error:
            return f"Module error: {to_json(error.get('Module', error.get('module')))}"
        if 'token' in error or 'Token' in error:
            return f"Token error: {to_json(error.get('token', error.get('Token')))}"
        if 'value' in error:
            return to_json(error['value'])
    return to_json(error)


def _first_present(result: dict, *keys: str) -> Any:
    for key in keys:
        if result.get(key) is not None:
            return result[key]
    return None


def interpret_dispatch_result(result: Any) -> DispatchOutcome:
    """Classifies a dispatch result as success, failure or unknown."""
    if result is None:
        return DispatchOutcome.unknown()

    if isinstance(result, bool):
        if result:
            return DispatchOutcome.success()
        return DispatchOutcome.failure('Scheduler dispatch returned error')

    if isinstance(result, str):
        word = result.strip().lower()
        if word in SUCCESS_WORDS:
            return DispatchOutcome.success()
        if word in FAILURE_WORDS:
            return DispatchOutcome.failure('Scheduler dispatch returned error')
        return DispatchOutcome.unknown()

    if not isinstance(result, dict):
        return DispatchOutcome.unknown()

    if isinstance(result.get('success'), bool):
        if result['success']:
            return DispatchOutcome.success()
        return DispatchOutcome.failure(format_dispatch_error(_first_present(result, 'value', 'error', 'err')))

    if isinstance(result.get('isOk'), bool):
        if result['isOk']:
            return DispatchOutcome.success()
        error = result.get('asErr')
        if callable(error):
            error = error()
        return DispatchOutcome.failure(format_dispatch_error(error))

    if isinstance(result.get('ok'), bool):
        if result['ok']:
            return DispatchOutcome.success()
        return DispatchOutcome.failure(format_dispatch_error(result.get('err')))

    if 'Ok' in result:
        return DispatchOutcome.success()

    if 'Err' in result:
        return DispatchOutcome.failure(format_dispatch_error(result['Err']))

    kind = _first_present(result, 'type', '__kind', 'kind')
    if isinstance(kind, str):
        word = kind.lower()
        if word in SUCCESS_WORDS:
            return DispatchOutcome.success()
        if word in FAILURE_WORDS:
            payload = _first_present(result, 'value', 'error', 'err')
            return DispatchOutcome.failure(format_dispatch_error(payload))

    return DispatchOutcome.unknown()

