"""Removal of invisible Unicode tag characters from prompt text.

The tag block (U+E0000..U+E007F) renders as nothing in most UIs but is read by
models, which makes it a carrier for hidden instructions.
"""

import re

TAG_BLOCK_START = 0xE0000
TAG_BLOCK_END = 0xE007F

_TAG_CHARS = re.compile(f"[{chr(TAG_BLOCK_START)}-{chr(TAG_BLOCK_END)}]")


def is_unicode_tag(char: str) -> bool:
    """Return True if the single character is in the Unicode tag block."""
    return TAG_BLOCK_START <= ord(char) <= TAG_BLOCK_END


def sanitize_unicode_tags(text: str) -> str:
    """Strip every tag-block code point, leaving all other code points as-is.

    Works on code points, so emoji, CJK and lone surrogates pass through
    untouched and in order.
    """
    return _TAG_CHARS.sub("", text)
