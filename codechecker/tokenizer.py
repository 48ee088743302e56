"""
Source code tokenization module.
"""

import io
import logging
import re
import tokenize
from typing import List

from nltk.tokenize import RegexpTokenizer

from .config import Token, TokenKind, PYTHON_KEYWORDS, DELIMITERS

logger = logging.getLogger(__name__)

# Token types that carry no code meaning
SKIPPED_TYPES = {
    tokenize.NEWLINE, tokenize.NL, tokenize.INDENT, tokenize.DEDENT,
    tokenize.ENDMARKER, tokenize.ENCODING,
}

FALLBACK_PATTERN = r'''
    \#.*                                    # comment
  | "(?:[^"\\]|\\.)*"?                      # double-quoted string, maybe unterminated
  | '(?:[^'\\]|\\.)*'?                      # single-quoted string, maybe unterminated
  | \d[\d_]*(?:\.\d*)?(?:[eE][+-]?\d+)?     # number
  | [^\W\d]\w*                              # identifier or keyword
  | \*\*=|//=|<<=|>>=|\.\.\.
  | \*\*|//|==|!=|>=|<=|<<|>>|\+=|-=|\*=|/=|%=|&=|\|=|\^=|->|:=
  | [^\w\s]                                 # any other symbol
'''


class PythonTokenizer:
    """Converts Python source into classified tokens"""

    def __init__(self):
        self.keywords = PYTHON_KEYWORDS
        self.delimiters = DELIMITERS
        self.fallback_lexer = RegexpTokenizer(FALLBACK_PATTERN, flags=re.UNICODE | re.MULTILINE | re.VERBOSE)

    def tokenize(self, source: str, include_comments: bool = False) -> List[Token]:
        """Tokenize source text; never raises on malformed input"""
        if not source:
            return []
        source = normalize_newlines(source)

        try:
            tokens = self._tokenize_stdlib(source)
        except (tokenize.TokenError, SyntaxError, ValueError) as e:
            logger.debug(f"Standard tokenizer failed ({e}); using fallback lexer")
            tokens = self._tokenize_fallback(source)

        if include_comments:
            return tokens
        return [t for t in tokens if t.kind != TokenKind.COMMENT]

    def token_values(self, source: str) -> List[str]:
        """Token values only, comments excluded"""
        return [t.value for t in self.tokenize(source)]

    def _tokenize_stdlib(self, source: str) -> List[Token]:
        """Tokenize with the standard library lexer"""
        tokens = []
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type in SKIPPED_TYPES:
                continue
            kind = self._classify(tok.type, tok.string)
            if kind is None:
                continue
            line, column = tok.start
            tokens.append(Token(kind, tok.string, line - 1, column))
        return tokens

    def _classify(self, token_type: int, value: str):
        if token_type == tokenize.COMMENT:
            return TokenKind.COMMENT
        if token_type == tokenize.NAME:
            return TokenKind.KEYWORD if value in self.keywords else TokenKind.IDENTIFIER
        if token_type in (tokenize.NUMBER, tokenize.STRING):
            return TokenKind.LITERAL

        # f-string / t-string pieces on newer interpreters
        type_name = tokenize.tok_name.get(token_type, '')
        if 'STRING_' in type_name:
            return TokenKind.LITERAL if value else None

        if not value.strip():
            return None
        return self._classify_symbol(value)

    def _classify_symbol(self, value: str) -> TokenKind:
        if len(value) == 1 and value in self.delimiters:
            return TokenKind.DELIMITER
        return TokenKind.OPERATOR

    def _tokenize_fallback(self, source: str) -> List[Token]:
        """Line-by-line regex lexer for code the standard lexer rejects"""
        tokens = []
        for line_index, line in enumerate(source.split('\n')):
            for start, end in self.fallback_lexer.span_tokenize(line):
                value = line[start:end]
                tokens.append(Token(self._classify_fallback(value), value, line_index, start))
        return tokens

    def _classify_fallback(self, value: str) -> TokenKind:
        first = value[0]
        if first == '#':
            return TokenKind.COMMENT
        if first in '"\'' or first.isdigit():
            return TokenKind.LITERAL
        if first.isalpha() or first == '_':
            return TokenKind.KEYWORD if value in self.keywords else TokenKind.IDENTIFIER
        return self._classify_symbol(value)


def normalize_newlines(source: str) -> str:
    return source.replace('\r\n', '\n').replace('\r', '\n')


def split_lines(source: str) -> List[str]:
    """Split source into lines using the tokenizer's line numbering"""
    if not source:
        return []
    return normalize_newlines(source).split('\n')
