"""
Text helpers applied to engine output before it reaches the client.
"""

import re


_NEWLINE_RUN = re.compile(r"\n{2,}")


def normalize_newlines(text: str) -> str:
    """
    Unify line breaks and collapse blank lines.

    ``\\r\\n`` and lone ``\\r`` become ``\\n``; any run of two or more
    ``\\n`` then becomes a single ``\\n``:

        >>> normalize_newlines("你好，\\r\\n\\r\\n\\n世界！")
        '你好，\\n世界！'

    The function is pure and idempotent.
    """
    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    return _NEWLINE_RUN.sub("\n", unified)
