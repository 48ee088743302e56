"""
Similarity computation between code submissions.

Two token-level measures are combined:

* Jaccard: overlap of the distinct token values of both submissions.
* LCS: length of the longest common subsequence of the full token
  sequences, divided by the length of the longer sequence.

The combined score is the weighted mean of the two (40/60 by default).
All scores are percentages in [0, 100].
"""

import logging
from typing import List, Optional, Sequence, Hashable

from .config import SimilarityResult, Token, EngineConfig
from .tokenizer import PythonTokenizer

logger = logging.getLogger(__name__)


class SimilarityCalculator:
    """Computes Jaccard, LCS and combined similarity between code bodies"""

    def __init__(self,
                 tokenizer: Optional[PythonTokenizer] = None,
                 jaccard_weight: float = 0.4,
                 lcs_weight: float = 0.6,
                 max_lcs_tokens: Optional[int] = None):

        if jaccard_weight < 0 or lcs_weight < 0 or jaccard_weight + lcs_weight == 0:
            raise ValueError(f"Invalid score weights: jaccard={jaccard_weight}, lcs={lcs_weight}")

        self.tokenizer = tokenizer or PythonTokenizer()
        self.jaccard_weight = jaccard_weight
        self.lcs_weight = lcs_weight
        self.max_lcs_tokens = max_lcs_tokens

    @classmethod
    def from_config(cls, config: EngineConfig,
                    tokenizer: Optional[PythonTokenizer] = None) -> "SimilarityCalculator":
        return cls(
            tokenizer=tokenizer,
            jaccard_weight=config.jaccard_weight,
            lcs_weight=config.lcs_weight,
            max_lcs_tokens=config.max_lcs_tokens
        )

    def calculate_similarity(self, code1: str, code2: str) -> SimilarityResult:
        """Tokenize both code bodies and score them"""
        tokens1 = self.tokenizer.tokenize(code1)
        tokens2 = self.tokenizer.tokenize(code2)
        return self.calculate_from_tokens(tokens1, tokens2)

    def calculate_from_tokens(self, tokens1: List[Token], tokens2: List[Token]) -> SimilarityResult:
        """Score two pre-computed token streams"""
        values1 = [t.value for t in tokens1]
        values2 = [t.value for t in tokens2]

        jaccard = self.jaccard_similarity(values1, values2)
        lcs = self.lcs_similarity(values1, values2)
        combined = self.combine(jaccard, lcs)

        logger.debug(f"Scores - Jaccard: {jaccard:.2f}, LCS: {lcs:.2f}, Combined: {combined:.2f} "
                     f"({len(values1)} vs {len(values2)} tokens)")

        return SimilarityResult(
            jaccard_score=jaccard,
            lcs_score=lcs,
            combined_score=combined
        )

    def jaccard_similarity(self, values1: Sequence[str], values2: Sequence[str]) -> float:
        """|A & B| / |A | B| over distinct values, as a percentage"""
        set1, set2 = set(values1), set(values2)
        union = len(set1 | set2)
        if union == 0:
            return 0.0
        return len(set1 & set2) / union * 100.0

    def lcs_similarity(self, values1: Sequence[str], values2: Sequence[str]) -> float:
        """LCS length over the longer sequence length, as a percentage"""
        if self.max_lcs_tokens is not None:
            values1 = values1[:self.max_lcs_tokens]
            values2 = values2[:self.max_lcs_tokens]

        longest = max(len(values1), len(values2))
        if longest == 0:
            return 0.0
        return lcs_length(values1, values2) / longest * 100.0

    def combine(self, jaccard: float, lcs: float) -> float:
        """Weighted mean of the two scores, clamped to [0, 100]"""
        combined = ((jaccard * self.jaccard_weight + lcs * self.lcs_weight) /
                    (self.jaccard_weight + self.lcs_weight))
        return min(100.0, max(0.0, combined))


def lcs_length(seq1: Sequence[Hashable], seq2: Sequence[Hashable]) -> int:
    """Length of the longest common subsequence of two sequences.

    Bit-parallel formulation (Allison-Dix / Hyyro): each bit of ``row``
    stands for a position in the shorter sequence, and one pass over the
    longer sequence updates all positions at once with integer arithmetic.
    Runs in O(n * m / w) time and O(m) space for word size w.
    """
    if not seq1 or not seq2:
        return 0

    if len(seq1) <= len(seq2):
        short, long_ = seq1, seq2
    else:
        short, long_ = seq2, seq1

    # Bit i set in masks[v] when short[i] == v
    masks = {}
    for i, value in enumerate(short):
        masks[value] = masks.get(value, 0) | (1 << i)

    full = (1 << len(short)) - 1
    row = full
    for value in long_:
        match = masks.get(value)
        if match is None:
            continue
        u = row & match
        row = ((row + u) | (row - u)) & full

    # Zero bits mark positions consumed by the subsequence
    return len(short) - bin(row).count('1')
