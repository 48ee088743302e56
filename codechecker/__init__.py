"""
Source Code Plagiarism Checker Package
"""

from .config import (
    TokenKind, SubmissionStatus, MatchType, RiskLevel, ReportStatus, ScanMode,
    Token, Submission, SimilarityResult, MatchRegion, HighlightData,
    AIAnalysis, Similarity, PlagiarismProgress, PairFailure, ScanReport,
    EngineConfig, UNASSIGNED_REPORT_ID, classify_risk, is_high_similarity,
    compute_code_hash
)
from .tokenizer import PythonTokenizer
from .similarity_calculator import SimilarityCalculator, lcs_length
from .highlight_generator import HighlightGenerator
from .plagiarism_engine import PlagiarismEngine, ScanCancelled, latest_submissions_by_student
from .submission_loader import SubmissionLoader

__version__ = "1.0.0"
__author__ = "Academic Integrity Systems"
__license__ = "MIT"

__all__ = [
    'PlagiarismEngine', 'ScanCancelled', 'latest_submissions_by_student',
    'TokenKind', 'SubmissionStatus', 'MatchType', 'RiskLevel', 'ReportStatus', 'ScanMode',
    'Token', 'Submission', 'SimilarityResult', 'MatchRegion', 'HighlightData',
    'AIAnalysis', 'Similarity', 'PlagiarismProgress', 'PairFailure', 'ScanReport',
    'EngineConfig', 'UNASSIGNED_REPORT_ID', 'classify_risk', 'is_high_similarity',
    'compute_code_hash',
    'PythonTokenizer', 'SimilarityCalculator', 'lcs_length', 'HighlightGenerator',
    'SubmissionLoader'
]
