"""
Line-level evidence for a compared pair.

Heuristic: a line of submission 1 is matched to a line of submission 2
when both lines carry at least one token value common to the two
submissions and their stripped text is identical. Each such pair of
lines becomes one exact-match region. Renamed variables defeat it, and
trivial lines such as ``pass`` or ``else:`` can be over-reported. Every
line spanned by a multi-line string carries that string.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from .config import HighlightData, MatchRegion, MatchType, Token
from .tokenizer import PythonTokenizer, split_lines

logger = logging.getLogger(__name__)


class HighlightGenerator:
    """Builds match regions between two code bodies"""

    def __init__(self, tokenizer: Optional[PythonTokenizer] = None,
                 merge_adjacent_lines: bool = False):
        self.tokenizer = tokenizer or PythonTokenizer()
        self.merge_adjacent_lines = merge_adjacent_lines

    def generate_highlight_data(self, code1: str, code2: str,
                                tokens1: Optional[List[Token]] = None,
                                tokens2: Optional[List[Token]] = None) -> HighlightData:
        """Find corresponding lines; always returns, possibly empty"""
        if tokens1 is None:
            tokens1 = self.tokenizer.tokenize(code1)
        if tokens2 is None:
            tokens2 = self.tokenizer.tokenize(code2)

        common = {t.value for t in tokens1} & {t.value for t in tokens2}
        if not common:
            return HighlightData()

        lines1 = split_lines(code1)
        lines2 = split_lines(code2)
        candidates1 = self._lines_with_common_tokens(tokens1, common)
        candidates2 = self._lines_with_common_tokens(tokens2, common)

        # Stripped text -> line indices of submission 2
        index2: Dict[str, List[int]] = defaultdict(list)
        for line_no in sorted(candidates2):
            text = lines2[line_no].strip() if line_no < len(lines2) else ''
            if text:
                index2[text].append(line_no)

        pairs: List[Tuple[int, int]] = []
        for line_no in sorted(candidates1):
            if line_no >= len(lines1):
                continue
            for other in index2.get(lines1[line_no].strip(), ()):
                pairs.append((line_no, other))

        if self.merge_adjacent_lines:
            regions = self._merge_runs(pairs)
        else:
            regions = [MatchRegion(a, a, b, b, MatchType.EXACT_MATCH) for a, b in pairs]

        logger.debug(f"Highlight: {len(common)} common token values, {len(regions)} regions")
        return HighlightData(tuple(regions))

    def _lines_with_common_tokens(self, tokens: List[Token], common: Set[str]) -> Set[int]:
        lines = set()
        for token in tokens:
            if token.value in common:
                # Multi-line strings cover every line they span
                lines.update(range(token.line, token.line + token.value.count('\n') + 1))
        return lines

    def _merge_runs(self, pairs: List[Tuple[int, int]]) -> List[MatchRegion]:
        """Collapse diagonal runs (a, b), (a+1, b+1), ... into single regions"""
        matched = set(pairs)
        regions = []
        for a, b in pairs:
            if (a - 1, b - 1) in matched:
                continue
            length = 1
            while (a + length, b + length) in matched:
                length += 1
            regions.append(MatchRegion(a, a + length - 1, b, b + length - 1, MatchType.EXACT_MATCH))
        return regions
