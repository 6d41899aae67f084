import re
import secrets
import string

CONFIRMATION_PATTERN = re.compile(r"^(IND|LDG|DEL)-\d{6}[A-Z]{2}$")


def generate_confirmation_number(prefix: str) -> str:
    """Format <PREFIXE>-<6 chiffres><2 lettres majuscules>, ex: IND-482913KX."""
    digits = "".join(secrets.choice(string.digits) for _ in range(6))
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(2))
    return f"{prefix}-{digits}{letters}"
