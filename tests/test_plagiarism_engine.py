"""
Tests for the plagiarism engine.
"""

import json
import threading

import pytest

from codechecker import (
    AIAnalysis, EngineConfig, PlagiarismEngine, ReportStatus, RiskLevel, ScanCancelled,
    ScanMode, Similarity, SimilarityCalculator, Submission, UNASSIGNED_REPORT_ID,
    classify_risk, is_high_similarity, latest_submissions_by_student
)

from conftest import BUBBLE_SORT, FACTORIAL, FACTORIAL_RENAMED, GREETING


class FailingCalculator(SimilarityCalculator):
    """Raises for any pair involving code that mentions ``boom``"""

    def calculate_from_tokens(self, tokens1, tokens2):
        if any(t.value == "boom" for t in list(tokens1) + list(tokens2)):
            raise RuntimeError("boom")
        return super().calculate_from_tokens(tokens1, tokens2)


class Recorder:
    """Progress callback collecting (current, total)"""

    def __init__(self):
        self.calls = []
        self.threads = set()

    def __call__(self, progress):
        self.calls.append((progress.current, progress.total))
        self.threads.add(threading.current_thread().name)


class TestDetectPlagiarism:

    def test_every_pair_once(self, engine, submissions):
        results = engine.detect_plagiarism(submissions)

        assert len(results) == 6
        assert [r.pair for r in results] == [(1, 2), (1, 3), (1, 4), (2, 3), (2, 4), (3, 4)]
        assert len({frozenset(r.pair) for r in results}) == 6
        assert all(r.submission1_id != r.submission2_id for r in results)

    @pytest.mark.parametrize("count", [0, 1, 2, 5])
    def test_pair_count(self, engine, make_submission, count):
        subs = [make_submission(i, f"v{i} = {i}") for i in range(1, count + 1)]

        assert len(engine.detect_plagiarism(subs)) == count * (count - 1) // 2

    def test_identical_pair(self, engine, make_submission):
        subs = [make_submission(1, "x=1\ny=2"), make_submission(2, "x=1\ny=2")]
        results = engine.detect_plagiarism(subs)

        assert len(results) == 1
        similarity = results[0]
        assert similarity.similarity_score == pytest.approx(100.0)
        assert similarity.jaccard_score == pytest.approx(100.0)
        assert similarity.lcs_score == pytest.approx(100.0)
        assert [(m.submission1_line_start, m.submission2_line_start)
                for m in similarity.highlight_data.matches] == [(0, 0), (1, 1)]

    def test_unrelated_pair(self, engine, make_submission):
        results = engine.detect_plagiarism([make_submission(1, "a=1"), make_submission(2, "b=2")])

        assert results[0].similarity_score < 30.0
        assert len(results[0].highlight_data) == 0

    def test_records_are_unassigned_and_timestamped(self, engine, submissions, clock):
        results = engine.detect_plagiarism(submissions)

        assert all(r.report_id == UNASSIGNED_REPORT_ID for r in results)
        assert all(r.created_at == clock.now for r in results)
        assert all(r.ai_analysis is None for r in results)

    def test_low_scores_are_kept(self, engine, make_submission):
        results = engine.detect_plagiarism([make_submission(1, FACTORIAL), make_submission(2, "zzz")])

        assert len(results) == 1
        assert results[0].similarity_score == 0.0

    def test_progress_per_pair(self, engine, submissions):
        recorder = Recorder()
        engine.detect_plagiarism(submissions, progress_callback=recorder)

        assert recorder.calls == [(i, 6) for i in range(1, 7)]

    def test_no_callback_for_single_submission(self, engine, submissions):
        recorder = Recorder()

        assert engine.detect_plagiarism(submissions[:1], progress_callback=recorder) == []
        assert recorder.calls == []

    def test_callback_errors_propagate(self, engine, submissions):
        def explode(progress):
            raise RuntimeError("listener bug")

        with pytest.raises(RuntimeError):
            engine.detect_plagiarism(submissions, progress_callback=explode)

    def test_duplicate_ids_rejected(self, engine, make_submission):
        with pytest.raises(ValueError):
            engine.detect_plagiarism([make_submission(1, "a = 1"), make_submission(1, "b = 2")])

    def test_input_is_not_modified(self, engine, submissions):
        before = list(submissions)
        engine.detect_plagiarism(submissions)

        assert submissions == before


class TestThreadedScan:

    def test_same_results_as_sequential(self, clock, submissions):
        sequential = PlagiarismEngine(EngineConfig(), clock=clock)
        threaded = PlagiarismEngine(EngineConfig(max_workers=4), clock=clock)

        assert threaded.detect_plagiarism(submissions) == sequential.detect_plagiarism(submissions)

    def test_progress_is_monotonic_on_calling_thread(self, clock, make_submission):
        subs = [make_submission(i, f"value_{i} = {i} * {i}") for i in range(1, 9)]
        engine = PlagiarismEngine(EngineConfig(max_workers=4), clock=clock)
        recorder = Recorder()

        engine.detect_plagiarism(subs, progress_callback=recorder)

        assert recorder.calls == [(i, 28) for i in range(1, 29)]
        assert recorder.threads == {threading.current_thread().name}

    def test_ranking_is_deterministic(self, clock, make_submission):
        subs = [make_submission(i, FACTORIAL) for i in range(1, 5)]
        engine = PlagiarismEngine(EngineConfig(max_workers=3), clock=clock)

        results = engine.find_high_similarity_pairs(subs)

        assert [r.pair for r in results] == [(1, 2), (1, 3), (1, 4), (2, 3), (2, 4), (3, 4)]


class TestDetectPlagiarismFast:

    def test_only_same_prefix_groups_compared(self, engine, make_submission):
        subs = [
            make_submission(1, FACTORIAL),
            make_submission(2, FACTORIAL),
            make_submission(3, BUBBLE_SORT),
            make_submission(4, FACTORIAL_RENAMED),
        ]
        results = engine.detect_plagiarism_fast(subs)

        assert [r.pair for r in results] == [(1, 2)]
        assert results[0].similarity_score == pytest.approx(100.0)

    def test_never_crosses_hash_prefix(self, engine, make_submission):
        subs = [make_submission(i, code) for i, code in
                enumerate([FACTORIAL, GREETING, FACTORIAL, BUBBLE_SORT, GREETING], start=1)]
        by_id = {s.id: s for s in subs}

        for result in engine.detect_plagiarism_fast(subs):
            first, second = by_id[result.submission1_id], by_id[result.submission2_id]
            assert first.code_hash[:8] == second.code_hash[:8]
            assert result.similarity_score >= 10.0

    def test_progress_per_group(self, engine, make_submission):
        subs = [
            make_submission(1, FACTORIAL),
            make_submission(2, GREETING),
            make_submission(3, FACTORIAL),
        ]
        recorder = Recorder()
        engine.detect_plagiarism_fast(subs, progress_callback=recorder)

        assert recorder.calls == [(1, 2), (2, 2)]

    def test_cutoff_with_single_group(self, clock, submissions, make_submission):
        subs = submissions + [make_submission(5, "zzz")]
        engine = PlagiarismEngine(EngineConfig(hash_prefix_length=0), clock=clock)

        fast = engine.detect_plagiarism_fast(subs)
        full = engine.detect_plagiarism(subs)

        assert fast == [s for s in full if s.similarity_score >= 10.0]
        assert len(fast) < len(full)

    def test_configurable_cutoff(self, clock, submissions):
        engine = PlagiarismEngine(EngineConfig(hash_prefix_length=0, low_similarity_cutoff=0.0),
                                  clock=clock)

        assert len(engine.detect_plagiarism_fast(submissions)) == 6

    def test_missing_hash_is_computed(self, engine):
        subs = [
            Submission(1, 1, 1, "a.py", FACTORIAL, ""),
            Submission(2, 2, 1, "b.py", FACTORIAL, ""),
        ]

        assert [r.pair for r in engine.detect_plagiarism_fast(subs)] == [(1, 2)]

    def test_empty_input(self, engine):
        assert engine.detect_plagiarism_fast([]) == []


class TestFindHighSimilarityPairs:

    def test_filters_and_sorts(self, engine, submissions, make_submission):
        subs = submissions + [make_submission(5, FACTORIAL)]
        results = engine.find_high_similarity_pairs(subs, threshold=60)

        assert results
        assert all(r.similarity_score >= 60 for r in results)
        scores = [r.similarity_score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].pair == (1, 5)

    def test_ties_keep_scan_order(self, engine, make_submission):
        subs = [
            make_submission(1, FACTORIAL),
            make_submission(2, GREETING),
            make_submission(3, FACTORIAL),
            make_submission(4, GREETING),
            make_submission(5, FACTORIAL),
        ]
        results = engine.find_high_similarity_pairs(subs)

        assert [r.pair for r in results] == [(1, 3), (1, 5), (2, 4), (3, 5)]

    def test_default_threshold_from_config(self, clock, submissions):
        engine = PlagiarismEngine(EngineConfig(default_threshold=0.0), clock=clock)

        assert len(engine.find_high_similarity_pairs(submissions)) == 6

    def test_threshold_above_everything(self, engine, submissions):
        assert engine.find_high_similarity_pairs(submissions, threshold=100.1) == []


class TestFailureIsolation:

    def test_failed_pairs_are_skipped(self, clock, submissions, make_submission):
        subs = submissions[:2] + [make_submission(3, "boom = 1")] + submissions[3:]
        engine = PlagiarismEngine(calculator=FailingCalculator(), clock=clock)
        recorder = Recorder()

        results = engine.detect_plagiarism(subs, progress_callback=recorder)

        assert [r.pair for r in results] == [(1, 2), (1, 4), (2, 4)]
        assert recorder.calls == [(i, 6) for i in range(1, 7)]

    def test_failures_in_scan_report(self, clock, submissions, make_submission):
        subs = submissions[:2] + [make_submission(3, "boom = 1")] + submissions[3:]
        engine = PlagiarismEngine(calculator=FailingCalculator(), clock=clock)

        report = engine.run_scan(subs)

        assert report.status == ReportStatus.COMPLETED
        assert [(f.submission1_id, f.submission2_id) for f in report.failures] == [(1, 3), (2, 3), (3, 4)]
        assert all("boom" in f.error for f in report.failures)

    def test_all_pairs_failing(self, clock, make_submission):
        subs = [make_submission(1, "boom = 1"), make_submission(2, "boom = 2")]
        engine = PlagiarismEngine(calculator=FailingCalculator(), clock=clock)

        report = engine.run_scan(subs)

        assert report.status == ReportStatus.FAILED
        assert report.similarities == []

    def test_threaded_failures(self, clock, submissions, make_submission):
        subs = submissions[:2] + [make_submission(3, "boom = 1")] + submissions[3:]
        engine = PlagiarismEngine(EngineConfig(max_workers=4), calculator=FailingCalculator(),
                                  clock=clock)

        assert [r.pair for r in engine.detect_plagiarism(subs)] == [(1, 2), (1, 4), (2, 4)]


class TestCancellation:

    def test_cancel_before_start(self, engine, submissions):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ScanCancelled) as info:
            engine.detect_plagiarism(submissions, cancel_event=cancel)

        assert info.value.similarities == []

    def test_cancel_mid_scan_keeps_partial_results(self, engine, submissions):
        cancel = threading.Event()

        def on_progress(progress):
            if progress.current == 2:
                cancel.set()

        with pytest.raises(ScanCancelled) as info:
            engine.detect_plagiarism(submissions, progress_callback=on_progress, cancel_event=cancel)

        assert [r.pair for r in info.value.similarities] == [(1, 2), (1, 3)]

    def test_run_scan_reports_cancellation(self, engine, submissions):
        cancel = threading.Event()
        cancel.set()

        report = engine.run_scan(submissions, cancel_event=cancel)

        assert report.status == ReportStatus.CANCELLED

    def test_fast_scan_cancel(self, engine, submissions):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ScanCancelled):
            engine.detect_plagiarism_fast(submissions, cancel_event=cancel)

    def test_unset_event_changes_nothing(self, engine, submissions):
        assert len(engine.detect_plagiarism(submissions, cancel_event=threading.Event())) == 6

    def test_threaded_cancel_before_start(self, clock, make_submission):
        subs = [make_submission(i, f"value_{i} = {i} * {i}") for i in range(1, 9)]
        engine = PlagiarismEngine(EngineConfig(max_workers=4), clock=clock)
        cancel = threading.Event()
        cancel.set()
        recorder = Recorder()

        with pytest.raises(ScanCancelled) as info:
            engine.detect_plagiarism(subs, progress_callback=recorder, cancel_event=cancel)

        assert info.value.similarities == []
        assert recorder.calls == []

    def test_threaded_cancel_mid_scan(self, clock, make_submission):
        subs = [make_submission(i, f"value_{i} = {i} * {i}") for i in range(1, 9)]
        engine = PlagiarismEngine(EngineConfig(max_workers=2), clock=clock)
        cancel = threading.Event()
        recorder = Recorder()

        def on_progress(progress):
            recorder(progress)
            cancel.set()

        with pytest.raises(ScanCancelled) as info:
            engine.detect_plagiarism(subs, progress_callback=on_progress, cancel_event=cancel)

        assert len(info.value.similarities) == 1
        assert recorder.calls == [(1, 28)]


class TestCompareAgainst:

    def test_target_is_first(self, engine, submissions):
        recorder = Recorder()
        results = engine.compare_against(submissions[0], submissions[1:], progress_callback=recorder)

        assert [r.pair for r in results] == [(1, 2), (1, 3), (1, 4)]
        assert recorder.calls == [(1, 3), (2, 3), (3, 3)]

    def test_no_others(self, engine, submissions):
        assert engine.compare_against(submissions[0], []) == []

    def test_target_in_pool_is_skipped(self, engine, submissions):
        recorder = Recorder()
        results = engine.compare_against(submissions[0], submissions, progress_callback=recorder)

        assert [r.pair for r in results] == [(1, 2), (1, 3), (1, 4)]
        assert recorder.calls == [(1, 3), (2, 3), (3, 3)]

    def test_threshold_filters_in_pool_order(self, engine, submissions, make_submission):
        pool = submissions + [make_submission(5, FACTORIAL)]
        results = engine.compare_against(pool[0], pool, threshold=90)

        assert [r.pair for r in results] == [(1, 5)]
        assert engine.compare_against(pool[0], pool, threshold=100.1) == []


class TestRunScan:

    def test_full_scan(self, engine, submissions, clock):
        report = engine.run_scan(submissions, assignment_id=7)

        assert report.mode == ScanMode.FULL
        assert report.status == ReportStatus.COMPLETED
        assert report.total_submissions == 4
        assert report.total_pairs == 6
        assert len(report.similarities) == 6
        assert report.started_at == clock.now
        assert report.assignment_id == 7

    def test_high_scan(self, engine, submissions, make_submission):
        subs = submissions + [make_submission(5, FACTORIAL)]
        report = engine.run_scan(subs, mode=ScanMode.HIGH, threshold=90)

        assert [s.pair for s in report.similarities] == [(1, 5)]

    def test_fast_scan(self, engine, submissions, make_submission):
        subs = submissions + [make_submission(5, FACTORIAL)]
        report = engine.run_scan(subs, mode=ScanMode.FAST)

        assert report.mode == ScanMode.FAST
        assert [s.pair for s in report.similarities] == [(1, 5)]

    def test_flagged_and_json(self, engine, submissions):
        report = engine.run_scan(submissions)
        data = json.loads(report.to_json())

        assert data['status'] == 'COMPLETED'
        assert data['totalPairs'] == 6
        assert len(data['similarities']) == 6
        assert len(report.flagged(0.0)) == 6


class TestSimilarityRecord:

    def make(self, **overrides):
        values = dict(report_id=UNASSIGNED_REPORT_ID, submission1_id=1, submission2_id=2,
                      similarity_score=75.0, jaccard_score=50.0, lcs_score=91.7)
        values.update(overrides)
        return Similarity(**values)

    def test_self_pair_rejected(self):
        with pytest.raises(ValueError):
            self.make(submission2_id=1)

    @pytest.mark.parametrize("field", ["similarity_score", "jaccard_score", "lcs_score"])
    @pytest.mark.parametrize("value", [-0.1, 100.5])
    def test_scores_must_be_bounded(self, field, value):
        with pytest.raises(ValueError):
            self.make(**{field: value})

    def test_report_assignment_returns_copy(self):
        similarity = self.make()
        owned = similarity.with_report_id(42)

        assert owned.report_id == 42
        assert similarity.report_id == UNASSIGNED_REPORT_ID
        assert owned.pair == similarity.pair

    def test_ai_analysis_attachment(self):
        analysis = AIAnalysis("Same loop structure", RiskLevel.HIGH, "Identical control flow.")
        annotated = self.make().with_ai_analysis(analysis)

        data = json.loads(annotated.to_json())
        assert json.loads(data['aiAnalysis']) == {
            'similarityReason': 'Same loop structure',
            'riskLevel': 'HIGH',
            'explanation': 'Identical control flow.',
        }
        assert AIAnalysis.from_dict(json.loads(data['aiAnalysis'])) == analysis

    def test_records_are_frozen(self):
        similarity = self.make()

        with pytest.raises(AttributeError):
            similarity.similarity_score = 10.0


class TestLatestSubmissions:

    def test_keeps_latest_per_student(self, make_submission):
        subs = [
            make_submission(1, "a = 1", student_id=10, submitted_at=100),
            make_submission(2, "b = 1", student_id=20, submitted_at=50),
            make_submission(3, "a = 2", student_id=10, submitted_at=200),
            make_submission(4, "b = 2", student_id=20, submitted_at=50),
            make_submission(5, "a = 0", student_id=10, submitted_at=150),
        ]

        assert [s.id for s in latest_submissions_by_student(subs)] == [3, 4]

    def test_empty(self):
        assert latest_submissions_by_student([]) == []


class TestRiskClassification:

    @pytest.mark.parametrize("score, level", [
        (0.0, RiskLevel.LOW),
        (59.99, RiskLevel.LOW),
        (60.0, RiskLevel.MEDIUM),
        (79.9, RiskLevel.MEDIUM),
        (80.0, RiskLevel.HIGH),
        (100.0, RiskLevel.HIGH),
    ])
    def test_classify_risk(self, score, level):
        assert classify_risk(score) == level

    def test_is_high_similarity(self):
        assert is_high_similarity(60.0)
        assert not is_high_similarity(59.9)
        assert is_high_similarity(40.0, threshold=40.0)


class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig()

        assert (config.jaccard_weight, config.lcs_weight) == (0.4, 0.6)
        assert config.hash_prefix_length == 8
        assert config.low_similarity_cutoff == 10.0
        assert config.default_threshold == 60.0

    @pytest.mark.parametrize("overrides", [
        {"jaccard_weight": -1.0},
        {"jaccard_weight": 0.0, "lcs_weight": 0.0},
        {"hash_prefix_length": -1},
        {"max_lcs_tokens": 0},
        {"max_workers": 0},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            EngineConfig(**overrides)

    def test_load_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"lcs_weight": 0.5, "max_workers": 2, "colour": "blue"}))

        config = EngineConfig.load(str(path))

        assert config.lcs_weight == 0.5
        assert config.max_workers == 2
