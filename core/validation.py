"""
Input Validation Utilities.

Field checks shared by the services. Every check raises
`core.exceptions.ValidationError` (HTTP 400) and runs before the service
touches the database, so a rejected request never has partial side effects.

Key Components:
- `InputValidator.is_blank` / `require_fields`: presence checks. A value is
  blank when it is missing or contains only whitespace.
- `InputValidator.validate_username` / `validate_email`: syntax checks used
  on registration and account updates.
- `InputValidator.normalize_name`: case-folding applied to usernames and
  playlist names before they are stored or compared.
"""

import re
from typing import Any, Dict

from core.exceptions import ValidationError


class InputValidator:
    """Field presence and syntax validation"""

    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,30}$")

    @staticmethod
    def is_blank(value: Any) -> bool:
        """True for None and for strings that are empty after stripping"""
        if value is None:
            return True
        return isinstance(value, str) and value.strip() == ""

    @staticmethod
    def require_fields(
        fields: Dict[str, Any], message: str = "All fields are required"
    ) -> None:
        """Raise ValidationError naming the first blank field"""
        for name, value in fields.items():
            if InputValidator.is_blank(value):
                raise ValidationError(message, field=name)

    @staticmethod
    def normalize_name(value: str) -> str:
        return value.strip().lower()

    @staticmethod
    def validate_email(email: str) -> str:
        """Validate email address"""
        email = email.strip()
        if not InputValidator.EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format", field="email")
        if len(email) > 254:
            raise ValidationError("Email address too long", field="email")
        return email

    @staticmethod
    def validate_username(username: str) -> str:
        """Validate and case-fold a username"""
        username = InputValidator.normalize_name(username)
        if not InputValidator.USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username must be 3-30 characters of letters, digits, '_', '.' or '-'",
                field="username",
            )
        return username
