"""Backend error codes.

The Pandora APIs embed a code such as "E18102" in their error messages. The
code is extracted once, where the response is read, and the rest of the
forwarder switches on the ErrorCode enum.
"""

import re
from enum import Enum


class ErrorCode(Enum):
    """Backend error conditions the forwarder reacts to."""
    REPO_NOT_FOUND = "E18102"
    SCHEMA_MISMATCH = "E18111"
    EXPORT_EXISTS = "E18301"
    SERIES_EXISTS = "E6302"
    SERIES_NOT_FOUND = "E7101"
    FIELD_TYPE_CONFLICT = "field type conflict"
    UNKNOWN = "unknown"


_CODE_PATTERN = re.compile(r'\bE\d{3,6}\b')
_CODES = {code.value: code for code in ErrorCode if code.value.startswith('E')}


def extract_error_code(message: str) -> ErrorCode:
    """Map a backend error message to an ErrorCode.

    Args:
        message: Error text as returned by the backend

    Returns:
        Matching ErrorCode, UNKNOWN when nothing recognised is embedded
    """
    if not message:
        return ErrorCode.UNKNOWN

    if ErrorCode.FIELD_TYPE_CONFLICT.value in message:
        return ErrorCode.FIELD_TYPE_CONFLICT

    for raw in _CODE_PATTERN.findall(message):
        code = _CODES.get(raw)
        if code is not None:
            return code

    return ErrorCode.UNKNOWN
