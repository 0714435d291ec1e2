"""
Command-Chain Parser.

Splits one shell line into the sub-commands it chains together with
&&, ||, ; or |. Four constructs are kept atomic while splitting:

- Quoted text, single or double, and backslash-escaped characters
  (operator characters inside them are literal)
- File-descriptor duplications such as 2>&1 (the embedded & is not an
  operator)
- Subshells, both $(...) and `...` (emitted as their own sub-command,
  never re-parsed)

Each construct is swapped for an indexed placeholder before tokenizing
and restored afterwards. Placeholders carry a tag generated per parse, so
text in the command itself can never be mistaken for one.
"""

import re
import shlex
import uuid
from typing import Optional

CHAIN_OPERATORS = ("&&", "||", ";", "|")

REDIRECTION_RE = re.compile(r"\d*>&\d*")
_SUBSHELL_DOLLAR_RE = re.compile(r"\$\((.*?)\)")
_SUBSHELL_BACKTICK_RE = re.compile(r"`(.*?)`")
_NEWLINE_RE = re.compile(r"\r?\n")


class CommandParseError(ValueError):
    """Raised when a command line cannot be tokenized (e.g. unbalanced quotes)."""


def _literal_spans(command: str) -> list[tuple[int, int]]:
    """
    Find the spans bash reads literally, scanning left to right.

    A backslash escapes the next character, single quotes run to the next
    single quote, and double quotes run to the next unescaped double
    quote. An unterminated quote is left alone so the tokenizer rejects it.
    """
    spans = []
    i, n = 0, len(command)
    while i < n:
        ch = command[i]
        if ch == "\\" and i + 1 < n:
            spans.append((i, i + 2))
            i += 2
        elif ch == "'":
            end = command.find("'", i + 1)
            if end == -1:
                break
            spans.append((i, end + 1))
            i = end + 1
        elif ch == '"':
            j = i + 1
            while j < n and command[j] != '"':
                j += 2 if command[j] == "\\" else 1
            if j >= n:
                break
            spans.append((i, j + 1))
            i = j + 1
        else:
            i += 1
    return spans


class _Sanitized:
    """A command line with its atomic constructs swapped for placeholders."""

    def __init__(self, command: str):
        self.tag = uuid.uuid4().hex
        self.redirections: list[str] = []
        self.subshells: list[str] = []
        self.quotes: list[str] = []

        self._quote_token_re = re.compile(rf"__QUOTE_{self.tag}_(\d+)__")
        self._redir_token_re = re.compile(rf"__REDIR_{self.tag}_(\d+)__")
        self._subshell_token_re = re.compile(rf"__SUBSH_{self.tag}_(\d+)__")

        text = self._mask_literals(command)
        text = REDIRECTION_RE.sub(self._stash_redirection, text)
        text = _SUBSHELL_DOLLAR_RE.sub(self._stash_subshell, text)
        text = _SUBSHELL_BACKTICK_RE.sub(self._stash_subshell, text)
        # An unquoted newline separates commands just like ;
        self.text = _NEWLINE_RE.sub(" ; ", text)

    def _mask_literals(self, command: str) -> str:
        parts = []
        last = 0
        for start, end in _literal_spans(command):
            parts.append(command[last:start])
            self.quotes.append(command[start:end])
            parts.append(f"__QUOTE_{self.tag}_{len(self.quotes) - 1}__")
            last = end
        parts.append(command[last:])
        return "".join(parts)

    def _stash_redirection(self, match: re.Match) -> str:
        self.redirections.append(match.group(0))
        return f"__REDIR_{self.tag}_{len(self.redirections) - 1}__"

    def _stash_subshell(self, match: re.Match) -> str:
        self.subshells.append(match.group(1).strip())
        return f"__SUBSH_{self.tag}_{len(self.subshells) - 1}__"

    def subshell_in(self, token: str) -> Optional[str]:
        """The subshell body a token stands for, if it holds a subshell placeholder."""
        match = self._subshell_token_re.search(token)
        return self.subshells[int(match.group(1))] if match else None

    def tokens(self) -> list[str]:
        lexer = shlex.shlex(self.text, posix=False, punctuation_chars=True)
        lexer.whitespace_split = True
        # Bash only starts a comment at a word boundary; never drop text here
        lexer.commenters = ""
        try:
            return list(lexer)
        except ValueError as e:
            raise CommandParseError(f"Cannot parse command: {e}") from e

    def restore(self, segment: str) -> str:
        segment = self._redir_token_re.sub(
            lambda m: self.redirections[int(m.group(1))], segment
        )
        return self._quote_token_re.sub(lambda m: self.quotes[int(m.group(1))], segment)


def _is_operator(token: str) -> bool:
    # punctuation_chars groups runs of operator characters into one token
    return bool(token) and all(ch in "();<>|&" for ch in token)


def parse_command(command: str) -> list[str]:
    """
    Split a command string into its chained sub-commands.

    Returns an empty list for empty or whitespace-only input.
    Raises CommandParseError if the line cannot be tokenized.
    """
    if not command or not command.strip():
        return []

    sanitized = _Sanitized(command)
    commands: list[str] = []
    current: list[str] = []

    for token in sanitized.tokens():
        if _is_operator(token):
            if token in CHAIN_OPERATORS:
                if current:
                    commands.append(" ".join(current))
                    current = []
            else:
                # Redirections and backgrounding stay part of the command
                current.append(token)
            continue

        subshell = sanitized.subshell_in(token)
        if subshell is not None:
            if current:
                commands.append(" ".join(current))
                current = []
            commands.append(subshell)
        else:
            current.append(token)

    if current:
        commands.append(" ".join(current))

    return [sanitized.restore(cmd) for cmd in commands]


def get_chain_operators(command: str) -> list[str]:
    """
    Return the chain operators of a command line in order.

    Operator characters inside quotes, subshells or fd duplications
    are not counted.
    """
    if not command or not command.strip():
        return []
    tokens = _Sanitized(command).tokens()
    return [token for token in tokens if token in CHAIN_OPERATORS]
