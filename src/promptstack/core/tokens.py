"""Token counting for composed prompts."""

import tiktoken

DEFAULT_ENCODING = "cl100k_base"


class TokenCounter:
    """Counts tokens using tiktoken, caching encodings per model."""

    def __init__(self) -> None:
        """Initialize token counter with encoding cache."""
        self._encoding_cache: dict[str, tiktoken.Encoding] = {}

    def _get_encoding(self, model: str) -> tiktoken.Encoding:
        """Get tiktoken encoding for model with caching."""
        if model not in self._encoding_cache:
            try:
                encoding = tiktoken.encoding_for_model(model)
            except KeyError:
                # Unknown models fall back to the common chat encoding
                encoding = tiktoken.get_encoding(DEFAULT_ENCODING)
            self._encoding_cache[model] = encoding
        return self._encoding_cache[model]

    def count_text(self, text: str, model: str) -> int:
        """Count tokens in text string.

        Args:
            text: Text to count tokens for
            model: Model name for encoding selection

        Returns:
            Number of tokens in the text
        """
        if not text:
            return 0

        encoding = self._get_encoding(model)
        return len(encoding.encode(text, disallowed_special=()))
