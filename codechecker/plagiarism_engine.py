"""
Plagiarism engine coordinating tokenization, scoring and evidence.
"""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import (
    EngineConfig, PairFailure, PlagiarismProgress, ReportStatus, ScanMode,
    ScanReport, Similarity, SimilarityResult, Submission, Token,
    UNASSIGNED_REPORT_ID, compute_code_hash, is_high_similarity
)
from .highlight_generator import HighlightGenerator
from .similarity_calculator import SimilarityCalculator
from .tokenizer import PythonTokenizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PlagiarismProgress], None]
Pair = Tuple[Submission, Submission]

# Pairs queued per worker between cancellation checks
PAIRS_PER_WORKER = 4


class ScanCancelled(Exception):
    """Raised when a scan stops on its cancel event"""

    def __init__(self, similarities: List[Similarity], failures: List[PairFailure]):
        super().__init__(f"Scan cancelled after {len(similarities)} results")
        self.similarities = similarities
        self.failures = failures


@dataclass
class _PairOutcome:
    similarity: Optional[Similarity] = None
    failure: Optional[PairFailure] = None
    skipped: bool = False


@dataclass
class _ScanBatch:
    similarities: List[Similarity] = field(default_factory=list)
    failures: List[PairFailure] = field(default_factory=list)
    total_pairs: int = 0
    skipped: int = 0
    cancelled: bool = False

    def extend(self, other: "_ScanBatch"):
        self.similarities.extend(other.similarities)
        self.failures.extend(other.failures)
        self.total_pairs += other.total_pairs
        self.skipped += other.skipped
        self.cancelled = self.cancelled or other.cancelled


def _now_millis() -> int:
    return int(time.time() * 1000)


class PlagiarismEngine:
    """Pairwise plagiarism detection over a set of submissions.

    The engine keeps no state between calls. Every produced Similarity
    carries ``UNASSIGNED_REPORT_ID``; the caller assigns the owning report
    before persisting.
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 tokenizer: Optional[PythonTokenizer] = None,
                 calculator: Optional[SimilarityCalculator] = None,
                 highlighter: Optional[HighlightGenerator] = None,
                 clock: Callable[[], int] = _now_millis):

        self.config = config or EngineConfig()
        self.tokenizer = tokenizer or PythonTokenizer()
        self.calculator = calculator or SimilarityCalculator.from_config(self.config, self.tokenizer)
        self.highlighter = highlighter or HighlightGenerator(
            self.tokenizer, merge_adjacent_lines=self.config.merge_adjacent_lines
        )
        self.clock = clock

    def detect_plagiarism(self,
                          submissions: Sequence[Submission],
                          progress_callback: Optional[ProgressCallback] = None,
                          cancel_event: Optional[threading.Event] = None) -> List[Similarity]:
        """Compare every unordered pair once, in input order (i < j)"""
        batch = self._scan_full(submissions, progress_callback, cancel_event)
        return self._unwrap(batch)

    def detect_plagiarism_fast(self,
                               submissions: Sequence[Submission],
                               progress_callback: Optional[ProgressCallback] = None,
                               cancel_event: Optional[threading.Event] = None) -> List[Similarity]:
        """Compare only within groups sharing a content-hash prefix.

        Pairs across groups are never compared, so two similar but not
        identical submissions in different groups are missed. Pairs scoring
        below the low-similarity cutoff are dropped. Progress is reported
        once per completed group.
        """
        batch = self._scan_fast(submissions, progress_callback, cancel_event)
        return self._unwrap(batch)

    def find_high_similarity_pairs(self,
                                   submissions: Sequence[Submission],
                                   threshold: Optional[float] = None,
                                   progress_callback: Optional[ProgressCallback] = None,
                                   cancel_event: Optional[threading.Event] = None) -> List[Similarity]:
        """Full scan filtered to score >= threshold, highest first"""
        if threshold is None:
            threshold = self.config.default_threshold
        batch = self._scan_full(submissions, progress_callback, cancel_event)
        similarities = self._unwrap(batch)
        return self._filter_and_rank(similarities, threshold)

    def compare_against(self,
                        target: Submission,
                        others: Sequence[Submission],
                        threshold: Optional[float] = None,
                        progress_callback: Optional[ProgressCallback] = None,
                        cancel_event: Optional[threading.Event] = None) -> List[Similarity]:
        """Compare one submission against each of the others.

        ``others`` may be the whole pool; the target itself is skipped.
        With a threshold, only records scoring at or above it are kept,
        still in pool order.
        """
        others = [other for other in others if other.id != target.id]
        batch = self._scan_target(target, others, progress_callback, cancel_event)
        similarities = self._unwrap(batch)
        if threshold is None:
            return similarities
        return [s for s in similarities if is_high_similarity(s.similarity_score, threshold)]

    def run_scan(self,
                 submissions: Sequence[Submission],
                 mode: ScanMode = ScanMode.FULL,
                 threshold: Optional[float] = None,
                 progress_callback: Optional[ProgressCallback] = None,
                 cancel_event: Optional[threading.Event] = None,
                 assignment_id: Optional[int] = None) -> ScanReport:
        """Run a scan and summarize it, including failed pairs"""
        started_at = self.clock()
        start_time = time.time()
        logger.info(f"Starting {mode.value} scan of {len(submissions)} submissions")

        if mode == ScanMode.FAST:
            batch = self._scan_fast(submissions, progress_callback, cancel_event)
        else:
            batch = self._scan_full(submissions, progress_callback, cancel_event)
            if mode == ScanMode.HIGH:
                if threshold is None:
                    threshold = self.config.default_threshold
                batch.similarities = self._filter_and_rank(batch.similarities, threshold)

        if batch.cancelled:
            status = ReportStatus.CANCELLED
        elif batch.total_pairs and len(batch.failures) == batch.total_pairs:
            status = ReportStatus.FAILED
        else:
            status = ReportStatus.COMPLETED

        processing_time = time.time() - start_time
        logger.info(f"Scan {status.value.lower()} in {processing_time:.2f}s: "
                    f"{len(batch.similarities)} results, {len(batch.failures)} failed, "
                    f"{batch.skipped} skipped")

        return ScanReport(
            mode=mode,
            status=status,
            total_submissions=len(submissions),
            total_pairs=batch.total_pairs,
            similarities=batch.similarities,
            failures=batch.failures,
            started_at=started_at,
            completed_at=self.clock(),
            processing_time=processing_time,
            assignment_id=assignment_id
        )

    def _scan_full(self, submissions, progress_callback, cancel_event) -> _ScanBatch:
        self._validate_submissions(submissions)
        pairs = [
            (submissions[i], submissions[j])
            for i in range(len(submissions))
            for j in range(i + 1, len(submissions))
        ]
        logger.info(f"Will perform {len(pairs)} pairwise comparisons")

        tokens = self._tokenize_all(submissions)
        return self._run_pairs(pairs, tokens, None, self._pair_progress(len(pairs), progress_callback),
                               cancel_event)

    def _scan_fast(self, submissions, progress_callback, cancel_event) -> _ScanBatch:
        self._validate_submissions(submissions)
        groups = self._group_by_hash_prefix(submissions)
        total = len(groups)
        logger.info(f"Fast scan: {len(submissions)} submissions in {total} hash groups")

        tokens = self._tokenize_all(submissions)
        result = _ScanBatch()
        cutoff = self.config.low_similarity_cutoff

        for processed, (prefix, group) in enumerate(groups.items(), start=1):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            pairs = [
                (group[i], group[j])
                for i in range(len(group))
                for j in range(i + 1, len(group))
            ]
            if pairs:
                logger.debug(f"Group '{prefix}': {len(group)} submissions, {len(pairs)} pairs")
                result.extend(self._run_pairs(pairs, tokens, cutoff, None, cancel_event))
                if result.cancelled:
                    break

            if progress_callback is not None:
                progress_callback(PlagiarismProgress(processed, total))

        if result.skipped:
            logger.info(f"Skipped {result.skipped} pairs below similarity {cutoff}")
        return result

    def _scan_target(self, target, others, progress_callback, cancel_event) -> _ScanBatch:
        self._validate_submissions([target] + list(others))
        pairs = [(target, other) for other in others]
        tokens = self._tokenize_all([target] + list(others))
        return self._run_pairs(pairs, tokens, None, self._pair_progress(len(pairs), progress_callback),
                               cancel_event)

    def _run_pairs(self,
                   pairs: List[Pair],
                   tokens: Dict[int, List[Token]],
                   cutoff: Optional[float],
                   on_pair_done: Optional[Callable[[], None]],
                   cancel_event: Optional[threading.Event]) -> _ScanBatch:
        """Evaluate pairs and collect outcomes in pair order"""
        outcomes: Dict[int, _PairOutcome] = {}
        cancelled = False

        if self.config.max_workers > 1 and len(pairs) > 1:
            batch_size = self.config.max_workers * PAIRS_PER_WORKER
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                for start in range(0, len(pairs), batch_size):
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break

                    futures = {
                        executor.submit(self._evaluate_pair, s1, s2, tokens, cutoff): index
                        for index, (s1, s2) in enumerate(pairs[start:start + batch_size], start=start)
                    }
                    # Completions are consumed here only, so progress stays ordered
                    for future in as_completed(futures):
                        outcomes[futures[future]] = future.result()
                        if on_pair_done is not None:
                            on_pair_done()
                        if cancel_event is not None and cancel_event.is_set():
                            cancelled = True
                            for pending in futures:
                                pending.cancel()
                            break
                    if cancelled:
                        break
        else:
            for index, (s1, s2) in enumerate(pairs):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                outcomes[index] = self._evaluate_pair(s1, s2, tokens, cutoff)
                if on_pair_done is not None:
                    on_pair_done()

        batch = _ScanBatch(total_pairs=len(pairs), cancelled=cancelled)
        for index in sorted(outcomes):
            outcome = outcomes[index]
            if outcome.similarity is not None:
                batch.similarities.append(outcome.similarity)
            elif outcome.failure is not None:
                batch.failures.append(outcome.failure)
            elif outcome.skipped:
                batch.skipped += 1
        return batch

    def _evaluate_pair(self, submission1: Submission, submission2: Submission,
                       tokens: Dict[int, List[Token]], cutoff: Optional[float]) -> _PairOutcome:
        """Score one pair; failures are recorded, never raised"""
        try:
            tokens1 = tokens[submission1.id]
            tokens2 = tokens[submission2.id]
            result = self.calculator.calculate_from_tokens(tokens1, tokens2)

            if cutoff is not None and result.combined_score < cutoff:
                logger.debug(f"Skipping {submission1.id} vs {submission2.id}: "
                             f"{result.combined_score:.2f} < {cutoff}")
                return _PairOutcome(skipped=True)

            highlight_data = self.highlighter.generate_highlight_data(
                submission1.code_content, submission2.code_content, tokens1, tokens2
            )
            logger.debug(f"Compared {submission1.id} vs {submission2.id}: {result.combined_score:.2f}")
            return _PairOutcome(similarity=self._build_similarity(submission1, submission2, result,
                                                                  highlight_data))
        except Exception as e:
            logger.warning(f"Comparison failed for submissions {submission1.id} and {submission2.id}: {e}")
            return _PairOutcome(failure=PairFailure(submission1.id, submission2.id, f"{type(e).__name__}: {e}"))

    def _build_similarity(self, submission1: Submission, submission2: Submission,
                          result: SimilarityResult, highlight_data) -> Similarity:
        return Similarity(
            report_id=UNASSIGNED_REPORT_ID,
            submission1_id=submission1.id,
            submission2_id=submission2.id,
            similarity_score=result.combined_score,
            jaccard_score=result.jaccard_score,
            lcs_score=result.lcs_score,
            highlight_data=highlight_data,
            ai_analysis=None,
            created_at=self.clock()
        )

    def _tokenize_all(self, submissions: Sequence[Submission]) -> Dict[int, List[Token]]:
        """Tokenize each submission once for the whole scan"""
        tokens = {}
        for submission in submissions:
            try:
                tokens[submission.id] = self.tokenizer.tokenize(submission.code_content)
            except Exception as e:
                # Pairs involving this submission fail individually on lookup
                logger.warning(f"Tokenization failed for submission {submission.id}: {e}")
        return tokens

    def _group_by_hash_prefix(self, submissions: Sequence[Submission]) -> "OrderedDict[str, List[Submission]]":
        """Group submissions by content-hash prefix, in first-seen order"""
        length = self.config.hash_prefix_length
        groups: "OrderedDict[str, List[Submission]]" = OrderedDict()
        for submission in submissions:
            code_hash = submission.code_hash or compute_code_hash(submission.code_content)
            groups.setdefault(code_hash[:length], []).append(submission)
        return groups

    def _pair_progress(self, total: int,
                       progress_callback: Optional[ProgressCallback]) -> Optional[Callable[[], None]]:
        if progress_callback is None:
            return None
        counter = [0]

        def on_pair_done():
            counter[0] += 1
            progress_callback(PlagiarismProgress(counter[0], total))

        return on_pair_done

    def _filter_and_rank(self, similarities: List[Similarity], threshold: float) -> List[Similarity]:
        high = [s for s in similarities if s.similarity_score >= threshold]
        # sorted() is stable, ties keep scan order
        return sorted(high, key=lambda s: s.similarity_score, reverse=True)

    def _unwrap(self, batch: _ScanBatch) -> List[Similarity]:
        if batch.cancelled:
            raise ScanCancelled(batch.similarities, batch.failures)
        return batch.similarities

    @staticmethod
    def _validate_submissions(submissions: Sequence[Submission]):
        seen = set()
        for submission in submissions:
            if submission.id in seen:
                raise ValueError(f"Duplicate submission id in scan: {submission.id}")
            seen.add(submission.id)


def latest_submissions_by_student(submissions: Sequence[Submission]) -> List[Submission]:
    """Keep each student's most recent submission, in first-seen student order"""
    latest: "OrderedDict[int, Submission]" = OrderedDict()
    for submission in submissions:
        current = latest.get(submission.student_id)
        if current is None or submission.submitted_at >= current.submitted_at:
            latest[submission.student_id] = submission
    return list(latest.values())
