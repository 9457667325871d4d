"""
Input Validation Utilities

Provides validation for operator inputs including:
- Phone number validation (international and local formats)
- Name validation
- Text sanitization for injection prevention
- Exact decimal validation for weights and money
"""
import re
from decimal import Decimal, InvalidOperation


class ValidationPatterns:
    """Regex patterns for validation"""

    # Local numbers (6-12 digits, optional leading 0) or E.164 with a leading +
    PHONE_LOCAL = re.compile(r"^0?\d{6,12}$")
    PHONE_INTERNATIONAL = re.compile(r"^\+[1-9]\d{6,14}$")

    # Latin names including accented letters
    NAME = re.compile(r"^[A-Za-zÀ-ɏ\s\-\'\.]{2,255}$")

    # Dangerous patterns for injection prevention
    # Specific enough to avoid false positives on legitimate text like "Union Street"
    SQL_INJECTION_PATTERNS = [
        # SQL comments
        re.compile(r"--\s*$|/\*|\*/", re.IGNORECASE),
        # Classic ' OR '1'='1 style
        re.compile(r"['\"]\s*(OR|AND)\s+['\"]?\w*['\"]?\s*=", re.IGNORECASE),
        # Tautologies: OR 1=1, OR 'a'='a'
        re.compile(r"\b(OR|AND)\s+(\d+\s*=\s*\d+|'[^']*'\s*=\s*'[^']*'|\"[^\"]*\"\s*=\s*\"[^\"]*\")", re.IGNORECASE),
        # Chained statements (; DROP TABLE ...)
        re.compile(r";\s*(SELECT|INSERT|UPDATE|DELETE|DROP|ALTER|CREATE|TRUNCATE)\b", re.IGNORECASE),
        re.compile(r"\bUNION\s+(ALL\s+)?SELECT\b", re.IGNORECASE),
    ]

    XSS_PATTERNS = [
        re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
        re.compile(r"javascript:", re.IGNORECASE),
        # Event handlers at a word boundary (onclick=, onload=)
        re.compile(r"\bon\w+=", re.IGNORECASE),
        re.compile(r"<iframe", re.IGNORECASE),
        re.compile(r"<object", re.IGNORECASE),
        re.compile(r"<embed", re.IGNORECASE),
    ]


class PhoneNumberValidator:
    """Phone number validation and normalization"""

    @staticmethod
    def validate(phone: str) -> bool:
        """
        Validate phone number format.

        Spaces, dashes, dots and parentheses are ignored.
        """
        if not phone:
            return False

        cleaned = re.sub(r"[\s\-\.\(\)]", "", phone)

        if ValidationPatterns.PHONE_INTERNATIONAL.match(cleaned):
            return True

        return bool(ValidationPatterns.PHONE_LOCAL.match(cleaned))

    @staticmethod
    def normalize(phone: str) -> str:
        """Strip formatting, keeping the digits and a leading +"""
        cleaned = re.sub(r"[^\d+]", "", phone)
        if "+" in cleaned[1:]:
            cleaned = cleaned[0] + cleaned[1:].replace("+", "")
        return cleaned


class TextSanitizer:
    """Text sanitization for security"""

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """
        Sanitize text input for safe storage.

        Does NOT HTML escape.
        Trims whitespace, enforces max length, removes null bytes and
        collapses repeated spaces.
        """
        if not text:
            return ""

        sanitized = text.strip()
        sanitized = sanitized[:max_length]
        sanitized = sanitized.replace("\x00", "")
        sanitized = re.sub(r" +", " ", sanitized)

        return sanitized

    @staticmethod
    def check_for_injection(text: str) -> tuple[bool, str | None]:
        """
        Check text for potential injection attacks.

        Returns:
            Tuple of (is_safe, detected_pattern)
        """
        if not text:
            return True, None

        for pattern in ValidationPatterns.SQL_INJECTION_PATTERNS:
            if pattern.search(text):
                return False, "SQL injection pattern detected"

        for pattern in ValidationPatterns.XSS_PATTERNS:
            if pattern.search(text):
                return False, "XSS pattern detected"

        return True, None


class NameValidator:
    """Name validation utilities"""

    MIN_LENGTH = 2
    MAX_LENGTH = 255

    @staticmethod
    def validate(name: str) -> tuple[bool, str | None]:
        """
        Validate name format.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name:
            return False, "Name is required"

        name = name.strip()

        if len(name) < NameValidator.MIN_LENGTH:
            return False, f"Name too short (minimum {NameValidator.MIN_LENGTH} characters)"

        if len(name) > NameValidator.MAX_LENGTH:
            return False, f"Name too long (maximum {NameValidator.MAX_LENGTH} characters)"

        if not ValidationPatterns.NAME.match(name):
            return False, "Name contains invalid characters"

        return True, None


class DecimalValidator:
    """Exact decimal validation for weights and monetary amounts"""

    @staticmethod
    def validate(
        value: Decimal | int | str,
        *,
        places: int,
        allow_zero: bool = False,
        max_value: Decimal = Decimal("1000000000"),
    ) -> tuple[bool, str | None]:
        """
        Validate a decimal quantity.

        Args:
            value: Value to validate (never a binary float)
            places: Maximum number of decimal places
            allow_zero: Accept exactly zero (free shipments)
            max_value: Upper bound, inclusive

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return False, "Not a valid decimal number"

        if not amount.is_finite():
            return False, "Not a valid decimal number"

        if amount < 0 or (amount == 0 and not allow_zero):
            return False, "Value must be positive"

        if amount > max_value:
            return False, f"Value cannot exceed {max_value}"

        if amount != amount.quantize(Decimal(1).scaleb(-places)):
            return False, f"Value cannot have more than {places} decimal places"

        return True, None


# Pydantic field validators for reuse
def phone_validator(v: str | None) -> str | None:
    """Pydantic field validator for phone numbers"""
    if v is None:
        return None
    if not PhoneNumberValidator.validate(v):
        raise ValueError("Invalid phone number format")
    return PhoneNumberValidator.normalize(v)


def name_validator(v: str | None) -> str | None:
    """Pydantic field validator for names"""
    if v is None:
        return None
    is_valid, error = NameValidator.validate(v)
    if not is_valid:
        raise ValueError(error)
    return TextSanitizer.sanitize(v.strip(), max_length=NameValidator.MAX_LENGTH)


def sanitized_text_validator(v: str | None, max_length: int = 1000) -> str | None:
    """Pydantic field validator for sanitized text"""
    if v is None:
        return None
    is_safe, pattern = TextSanitizer.check_for_injection(v)
    if not is_safe:
        raise ValueError(f"Invalid input: {pattern}")
    return TextSanitizer.sanitize(v, max_length)


def weight_validator(v: Decimal | None) -> Decimal | None:
    """Pydantic field validator for weights in kg (up to 3 decimals)"""
    if v is None:
        return None
    is_valid, error = DecimalValidator.validate(v, places=3)
    if not is_valid:
        raise ValueError(error)
    return Decimal(str(v))


def money_validator(v: Decimal | None, allow_zero: bool = False) -> Decimal | None:
    """Pydantic field validator for currency amounts (up to 2 decimals)"""
    if v is None:
        return None
    is_valid, error = DecimalValidator.validate(v, places=2, allow_zero=allow_zero)
    if not is_valid:
        raise ValueError(error)
    return Decimal(str(v))
