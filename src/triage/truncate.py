"""Fit text into a fixed-size byte column without splitting a character."""

ENCODING = "utf-8"


def truncate_to_bytes(text: str | None, max_bytes: int, encoding: str = ENCODING) -> str | None:
    """Return the longest prefix of ``text`` whose encoded size is at most ``max_bytes``.

    Walks the text one character at a time and stops before the first
    character that would overflow the budget, so the result always ends on
    a character boundary. Text that already fits is returned unchanged.

    Args:
        text: Value to fit. Empty strings and None are returned as-is.
        max_bytes: Byte budget of the destination column (>= 0).
        encoding: Encoding the column stores, utf-8 unless told otherwise.

    Raises:
        ValueError: If ``max_bytes`` is negative.
    """
    if max_bytes < 0:
        msg = f"max_bytes must be >= 0, got {max_bytes}"
        raise ValueError(msg)
    if not text:
        return text

    used = 0
    for index, char in enumerate(text):
        used += len(char.encode(encoding))
        if used > max_bytes:
            return text[:index]
    return text
