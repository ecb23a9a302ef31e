"""Secret masking for error text.

Underlying backend errors can echo tokens or resolved values. Anything
surfaced to a caller or written to a log goes through mask_secrets().
"""

import re

MASK_TOKEN = "****"

# Contiguous run of 20+ base64-ish characters
SECRET_PATTERN = re.compile(r"[A-Za-z0-9+/]{20,}")


def mask_secrets(message: str) -> str:
    """Replace every long alphanumeric/`+`/`/` run with MASK_TOKEN."""
    if not message:
        return message
    return SECRET_PATTERN.sub(MASK_TOKEN, message)
