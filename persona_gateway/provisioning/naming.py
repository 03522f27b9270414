from __future__ import annotations

CALL_PREFIX_MARKER = ".."
RESERVED_IDENTITY_WORDS = ("discord", "clyde")

# Cyrillic look-alikes; webhook names containing a reserved word are rejected by Discord.
_HOMOGLYPHS = str.maketrans({"o": "\u043e", "O": "\u041e", "c": "\u0441", "C": "\u0421"})


def call_prefix_for(name: str) -> str:
    return f"{CALL_PREFIX_MARKER}{name.strip()[:2].lower()}"


def sanitize_identity_name(name: str, reserved: tuple[str, ...] = RESERVED_IDENTITY_WORDS) -> str:
    lowered = name.lower()
    if not any(word in lowered for word in reserved):
        return name
    return name.translate(_HOMOGLYPHS)
