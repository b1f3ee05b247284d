import re
from typing import Optional

from constants import EMAIL_REGEX

_EMAIL = re.compile(EMAIL_REGEX)


def validate_email(value: Optional[str]) -> bool:
    if not value:
        return False
    return _EMAIL.match(value) is not None
