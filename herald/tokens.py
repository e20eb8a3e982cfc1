"""
Herald tokenizer: split a chat line into command tokens.

Rules
- whitespace separates tokens.
- a double-quoted ("...") or single-quoted ('...') run is one token; the quotes are
  stripped and the content is taken verbatim (no escape processing).
- any other run of non-whitespace is one token.
- an unterminated quote is literal text: it is kept together with the unquoted run
  after it, so 'say "hi' gives ['say', '"hi']. Later closed quotes still group.

Examples
    >>> tokenize('I am a "discord bot"')
    ['I', 'am', 'a', 'discord bot']
    >>> tokenize("ban 'some user' now")
    ['ban', 'some user', 'now']
    >>> tokenize("")
    []
"""
import re

# Alternatives are tried left to right at each position:
#   1. a closed double-quoted run  → group "double"
#   2. a closed single-quoted run  → group "single"
#   3. a run of non-quote, non-whitespace characters
#   4. a stray quote with the unquoted run after it (an unterminated quote)
_TOKEN = re.compile(r"""
    "(?P<double>[^"]*)"
  | '(?P<single>[^']*)'
  | [^\s"']+
  | ["'][^\s"']*
""", re.VERBOSE)


def tokenize(line, /):
    """
    split a line into tokens, honoring quoted substrings as single tokens.

    parameters
    - line: str
      raw text (the message content after the invocation prefix).

    returns
    - list[str]: tokens in left-to-right order; empty input yields [].

    errors
    - TypeError when line is not a string. malformed quoting never raises.
    """
    if not isinstance(line, str):
        raise TypeError("tokenize() argument must be a string")

    tokens = []
    for match in _TOKEN.finditer(line):
        if match["double"] is not None:
            tokens.append(match["double"])
        elif match["single"] is not None:
            tokens.append(match["single"])
        else:
            tokens.append(match[0])
    return tokens


__all__ = (
    "tokenize",
)
