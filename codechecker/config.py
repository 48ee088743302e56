"""
Configuration, enums, and data classes for the code plagiarism checker.
"""

from enum import Enum
from dataclasses import dataclass, field, asdict, replace, fields
from typing import List, Tuple, Optional, Dict, Any
import hashlib
import json
import keyword


class TokenKind(Enum):
    """Lexical token categories"""
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    LITERAL = "literal"
    OPERATOR = "operator"
    DELIMITER = "delimiter"
    COMMENT = "comment"


class SubmissionStatus(Enum):
    """Submission lifecycle states"""
    SUBMITTED = "SUBMITTED"
    ANALYZED = "ANALYZED"
    PROCESSED = "PROCESSED"


class MatchType(Enum):
    """Kind of evidence a match region represents"""
    EXACT_MATCH = "EXACT_MATCH"
    STRUCTURAL_MATCH = "STRUCTURAL_MATCH"

    @classmethod
    def from_value(cls, value: str) -> "MatchType":
        for match_type in cls:
            if match_type.value == value:
                return match_type
        return cls.EXACT_MATCH


class RiskLevel(Enum):
    """Plagiarism risk classification"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_value(cls, value: str) -> "RiskLevel":
        for level in cls:
            if level.value == value:
                return level
        return cls.LOW


class ReportStatus(Enum):
    """Scan report states"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ScanMode(Enum):
    """Engine entry point used for a scan"""
    FULL = "full"
    FAST = "fast"
    HIGH = "high"


@dataclass(frozen=True)
class Token:
    """Classified lexical unit. Lines and columns are zero-based."""
    kind: TokenKind
    value: str
    line: int
    column: int = 0


@dataclass(frozen=True)
class Submission:
    """A student's code submission"""
    id: int
    student_id: int
    assignment_id: int
    file_name: str
    code_content: str
    code_hash: str
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    submitted_at: int = 0
    student_name: str = ""
    file_size: int = 0

    @classmethod
    def from_code(cls, id: int, code_content: str, student_id: Optional[int] = None,
                  assignment_id: int = 0, file_name: str = "", **kwargs) -> "Submission":
        """Build a submission, hashing its content"""
        return cls(
            id=id,
            student_id=id if student_id is None else student_id,
            assignment_id=assignment_id,
            file_name=file_name,
            code_content=code_content,
            code_hash=compute_code_hash(code_content),
            file_size=kwargs.pop('file_size', len(code_content.encode('utf-8'))),
            **kwargs
        )


@dataclass(frozen=True)
class SimilarityResult:
    """Scores for one pair of code bodies, each in [0, 100]"""
    jaccard_score: float
    lcs_score: float
    combined_score: float


@dataclass(frozen=True)
class MatchRegion:
    """Lines [start, end] of submission 1 corresponding to lines of submission 2"""
    submission1_line_start: int
    submission1_line_end: int
    submission2_line_start: int
    submission2_line_end: int
    match_type: MatchType = MatchType.EXACT_MATCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            'submission1LineStart': self.submission1_line_start,
            'submission1LineEnd': self.submission1_line_end,
            'submission2LineStart': self.submission2_line_start,
            'submission2LineEnd': self.submission2_line_end,
            'matchType': self.match_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchRegion":
        return cls(
            submission1_line_start=int(data['submission1LineStart']),
            submission1_line_end=int(data['submission1LineEnd']),
            submission2_line_start=int(data['submission2LineStart']),
            submission2_line_end=int(data['submission2LineEnd']),
            match_type=MatchType.from_value(data.get('matchType', '')),
        )


@dataclass(frozen=True)
class HighlightData:
    """Ordered match regions for one pair"""
    matches: Tuple[MatchRegion, ...] = ()

    def __len__(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        return {'matches': [m.to_dict() for m in self.matches]}

    def to_json(self) -> str:
        """Serialize evidence for storage"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: Optional[str]) -> "HighlightData":
        """Parse stored evidence; malformed input yields no matches"""
        if not text:
            return cls()
        try:
            data = json.loads(text)
            return cls(tuple(MatchRegion.from_dict(m) for m in data.get('matches', [])))
        except (ValueError, KeyError, TypeError, AttributeError):
            return cls()


@dataclass(frozen=True)
class AIAnalysis:
    """Annotation produced by the external AI analysis service"""
    similarity_reason: str
    risk_level: RiskLevel
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'similarityReason': self.similarity_reason,
            'riskLevel': self.risk_level.value,
            'explanation': self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIAnalysis":
        return cls(
            similarity_reason=data.get('similarityReason', ''),
            risk_level=RiskLevel.from_value(data.get('riskLevel', '')),
            explanation=data.get('explanation', ''),
        )


UNASSIGNED_REPORT_ID = 0


@dataclass(frozen=True)
class Similarity:
    """Similarity record for one pair of submissions"""
    report_id: int
    submission1_id: int
    submission2_id: int
    similarity_score: float
    jaccard_score: float
    lcs_score: float
    highlight_data: HighlightData = field(default_factory=HighlightData)
    ai_analysis: Optional[AIAnalysis] = None
    created_at: int = 0
    id: int = 0

    def __post_init__(self):
        if self.submission1_id == self.submission2_id:
            raise ValueError(f"Similarity pair must reference two submissions, got {self.submission1_id} twice")
        for name in ('similarity_score', 'jaccard_score', 'lcs_score'):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} out of range [0, 100]: {value}")

    @property
    def pair(self) -> Tuple[int, int]:
        return (self.submission1_id, self.submission2_id)

    def with_report_id(self, report_id: int) -> "Similarity":
        """Copy of this record owned by the given report"""
        return replace(self, report_id=report_id)

    def with_ai_analysis(self, analysis: Optional[AIAnalysis]) -> "Similarity":
        """Copy of this record carrying an AI annotation"""
        return replace(self, ai_analysis=analysis)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'reportId': self.report_id,
            'submission1Id': self.submission1_id,
            'submission2Id': self.submission2_id,
            'similarityScore': self.similarity_score,
            'jaccardScore': self.jaccard_score,
            'lcsScore': self.lcs_score,
            'highlightData': self.highlight_data.to_json(),
            'aiAnalysis': json.dumps(self.ai_analysis.to_dict()) if self.ai_analysis else None,
            'createdAt': self.created_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class PlagiarismProgress:
    """Progress of a long-running scan"""
    current: int
    total: int

    @property
    def fraction(self) -> float:
        return self.current / self.total if self.total else 1.0


@dataclass(frozen=True)
class PairFailure:
    """A pair whose comparison raised"""
    submission1_id: int
    submission2_id: int
    error: str


@dataclass
class ScanReport:
    """Outcome of one plagiarism scan"""
    mode: ScanMode
    status: ReportStatus
    total_submissions: int
    total_pairs: int
    similarities: List[Similarity]
    failures: List[PairFailure]
    started_at: int
    completed_at: Optional[int] = None
    processing_time: float = 0.0
    assignment_id: Optional[int] = None

    def flagged(self, threshold: float) -> List[Similarity]:
        """Records at or above the threshold"""
        return [s for s in self.similarities if is_high_similarity(s.similarity_score, threshold)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'status': self.status.value,
            'assignmentId': self.assignment_id,
            'totalSubmissions': self.total_submissions,
            'totalPairs': self.total_pairs,
            'startedAt': self.started_at,
            'completedAt': self.completed_at,
            'processingTime': self.processing_time,
            'similarities': [s.to_dict() for s in self.similarities],
            'failures': [asdict(f) for f in self.failures],
        }

    def to_json(self) -> str:
        """Convert report to JSON string"""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save_json(self, filepath: str):
        """Save report to JSON file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


@dataclass
class EngineConfig:
    """Tunable scoring and scan policy"""
    jaccard_weight: float = 0.4
    lcs_weight: float = 0.6
    hash_prefix_length: int = 8
    low_similarity_cutoff: float = 10.0
    default_threshold: float = 60.0
    max_lcs_tokens: Optional[int] = None
    max_workers: int = 1
    merge_adjacent_lines: bool = False

    def __post_init__(self):
        if self.jaccard_weight < 0 or self.lcs_weight < 0:
            raise ValueError("Score weights must be non-negative")
        if self.jaccard_weight + self.lcs_weight == 0:
            raise ValueError("At least one score weight must be positive")
        if self.hash_prefix_length < 0:
            raise ValueError("hash_prefix_length must be >= 0")
        if self.max_lcs_tokens is not None and self.max_lcs_tokens < 1:
            raise ValueError("max_lcs_tokens must be positive when set")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build from a mapping, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, filepath: str) -> "EngineConfig":
        """Load from a JSON file"""
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))


def compute_code_hash(code: str) -> str:
    """MD5 hex digest of source text"""
    return hashlib.md5(code.encode('utf-8')).hexdigest()


# Constants
PYTHON_KEYWORDS = frozenset(keyword.kwlist) | frozenset({
    'str', 'int', 'float', 'bool', 'list', 'dict', 'tuple', 'set'
})

DELIMITERS = frozenset('()[]{}:.,;@')

RISK_THRESHOLDS = {
    'high': 80.0,
    'medium': 60.0,
}

DEFAULT_EXTENSIONS = ('.py',)

MAX_SUBMISSION_BYTES = 1024 * 1024  # 1MB


def classify_risk(score: float) -> RiskLevel:
    """Classify a combined score into a risk level"""
    if score >= RISK_THRESHOLDS['high']:
        return RiskLevel.HIGH
    elif score >= RISK_THRESHOLDS['medium']:
        return RiskLevel.MEDIUM
    else:
        return RiskLevel.LOW


def is_high_similarity(score: float, threshold: float = RISK_THRESHOLDS['medium']) -> bool:
    return score >= threshold
