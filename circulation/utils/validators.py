import re
from typing import Optional

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 \-()]{4,19}$")


class IDValidator:
    """Book and member ids: short, no spaces, case-sensitive."""

    MAX_LENGTH = 20

    @staticmethod
    def normalize_id(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip()

    @staticmethod
    def is_valid_id(record_id: Optional[str]) -> bool:
        s = IDValidator.normalize_id(record_id)
        if not s or len(s) > IDValidator.MAX_LENGTH:
            return False
        return bool(_ID_RE.match(s))


class TextValidator:
    """Basic text validations and sanitization."""

    @staticmethod
    def _is_non_empty(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return TextValidator._is_non_empty(title)

    @staticmethod
    def validate_name(name: Optional[str]) -> bool:
        # must not be digits only
        if not TextValidator._is_non_empty(name):
            return False
        return not name.strip().isdigit()

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # drop control characters and collapse runs of whitespace
        cleaned = re.sub(r"[\x00-\x1f\x7f]", " ", text)
        return re.sub(r"\s+", " ", cleaned).strip()


class ContactValidator:
    """Email and phone are optional; when given they must look plausible."""

    @staticmethod
    def validate_email(email: Optional[str]) -> bool:
        if not email or not email.strip():
            return True
        return bool(_EMAIL_RE.match(email.strip()))

    @staticmethod
    def validate_phone(phone: Optional[str]) -> bool:
        if not phone or not phone.strip():
            return True
        return bool(_PHONE_RE.match(phone.strip()))
