"""
Directive tokenizer.

Splits a configuration line into whitespace-separated tokens, keeping
double-quoted substrings together.
"""

from typing import Iterator

DEFAULT_DELIMITERS = " \t\r\n"


class LineTokenizer:
    """
    Lazy token iterator over a single line.

    The cursor is private to the instance, so several tokenizers can be
    active at once. `rest()` gives the untokenized remainder after the
    tokens consumed so far.
    """

    def __init__(self, line: str, delimiters: str = DEFAULT_DELIMITERS):
        self._line = line
        self._delimiters = delimiters
        self._pos = 0

    def __iter__(self) -> "LineTokenizer":
        return self

    def __next__(self) -> str:
        token = self.next_token()
        if token is None:
            raise StopIteration
        return token

    def next_token(self) -> str | None:
        """Return the next token, or None at end of line."""
        line = self._line
        pos = self._pos
        end = len(line)

        while pos < end and line[pos] in self._delimiters:
            pos += 1

        if pos >= end:
            self._pos = end
            return None

        delimiters = self._delimiters
        if line[pos] == '"':
            pos += 1
            delimiters = '"'

        start = pos
        while pos < end and line[pos] not in delimiters:
            pos += 1

        token = line[start:pos]
        # step over the terminating delimiter (or closing quote)
        self._pos = min(pos + 1, end)
        return token

    def rest(self) -> str:
        """Remainder of the line after the cursor, whitespace-trimmed."""
        return self._line[self._pos:].strip(DEFAULT_DELIMITERS)


def tokenize(line: str, delimiters: str = DEFAULT_DELIMITERS) -> Iterator[str]:
    """Yield the tokens of `line`."""
    yield from LineTokenizer(line, delimiters)
