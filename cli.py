"""
Command-line interface for the code plagiarism checker.
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from codechecker import (
    EngineConfig, PlagiarismEngine, ReportStatus, ScanMode, SubmissionLoader,
    classify_risk, latest_submissions_by_student
)
from codechecker.tokenizer import split_lines
from utils.helpers import setup_logging, format_percentage, format_time, print_progress


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description='Code Plagiarism Checker - Token-Based Similarity Detection',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s scan ./submissions
  %(prog)s scan ./submissions --mode fast --workers 4
  %(prog)s scan ./submissions --mode high --threshold 75 --output ./my_reports
  %(prog)s compare alice.py bob.py
  %(prog)s test --unit
        """
    )
    parser.add_argument('--log-dir', default='./logs', help='Directory for log files')
    parser.add_argument('--log-level', default='INFO', help='Logging level')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Scan a directory of submissions')
    scan_parser.add_argument('directory', help='Directory containing source files')
    scan_parser.add_argument('--mode', '-m', choices=[m.value for m in ScanMode], default='full',
                             help='full: all pairs, fast: hash groups only, high: flagged pairs only')
    scan_parser.add_argument('--threshold', '-t', type=float, default=None,
                             help='Similarity threshold in percent')
    scan_parser.add_argument('--workers', '-w', type=int, default=None,
                             help='Number of comparison threads')
    scan_parser.add_argument('--config', '-c', default=None,
                             help='JSON file with engine settings')
    scan_parser.add_argument('--output', '-o', default='./reports',
                             help='Output directory for reports')
    scan_parser.add_argument('--prefix', '-p', default='',
                             help='Prefix for output filenames')
    scan_parser.add_argument('--ext', action='append', default=None,
                             help='File extension to include (repeatable, default .py)')
    scan_parser.add_argument('--latest-only', action='store_true',
                             help="Keep only each student's most recent submission")
    scan_parser.add_argument('--no-reports', action='store_true',
                             help='Print the summary without writing report files')

    # Compare command
    compare_parser = subparsers.add_parser('compare', help='Compare two source files')
    compare_parser.add_argument('file_a', help='First source file')
    compare_parser.add_argument('file_b', help='Second source file')
    compare_parser.add_argument('--merge-lines', action='store_true',
                                help='Merge consecutive matching lines into blocks')

    # Test command
    test_parser = subparsers.add_parser('test', help='Run tests')
    test_parser.add_argument('--all', action='store_true',
                             help='Run all tests')
    test_parser.add_argument('--unit', action='store_true',
                             help='Run unit tests only')
    test_parser.add_argument('--integration', action='store_true',
                             help='Run integration tests only')

    # Version command
    subparsers.add_parser('version', help='Show version information')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    logger = setup_logging(args.log_dir, args.log_level)

    if args.command == 'scan':
        run_scan(args, logger)
    elif args.command == 'compare':
        run_compare(args, logger)
    elif args.command == 'test':
        run_tests(args, logger)
    elif args.command == 'version':
        show_version()


def load_config(args) -> EngineConfig:
    """Engine settings from --config, overridden by command-line flags"""
    config_path = getattr(args, 'config', None)
    config = EngineConfig.load(config_path) if config_path else EngineConfig()
    overrides = {}
    if getattr(args, 'workers', None) is not None:
        overrides['max_workers'] = args.workers
    if getattr(args, 'threshold', None) is not None:
        overrides['default_threshold'] = args.threshold
    if getattr(args, 'merge_lines', False):
        overrides['merge_adjacent_lines'] = True
    # replace() re-runs validation
    return replace(config, **overrides) if overrides else config


def run_scan(args, logger):
    """Scan every submission in a directory"""
    from utils.validators import validate_directory, validate_threshold

    is_valid, error = validate_directory(args.directory)
    if not is_valid:
        print(f"Error: {error}")
        sys.exit(1)

    if args.threshold is not None:
        is_valid, error = validate_threshold(args.threshold)
        if not is_valid:
            print(f"Error: {error}")
            sys.exit(1)

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}")
        sys.exit(1)

    loader = SubmissionLoader(extensions=args.ext) if args.ext else SubmissionLoader()
    submissions = loader.load_directory(args.directory)
    if args.latest_only:
        submissions = latest_submissions_by_student(submissions)

    if len(submissions) < 2:
        print(f"Error: need at least two submissions, found {len(submissions)} in {args.directory}")
        sys.exit(1)

    mode = ScanMode(args.mode)
    print(f"\n🔍 Scanning {len(submissions)} submissions from {args.directory} ({mode.value} mode)")
    print("="*50)

    try:
        engine = PlagiarismEngine(config)
        report = engine.run_scan(submissions, mode=mode, progress_callback=print_progress)
    except Exception as e:
        logger.error(f"Scan failed: {e}")
        print(f"\n❌ Scan failed: {e}")
        sys.exit(1)

    print_summary(report, submissions, config.default_threshold)

    if not args.no_reports:
        from codechecker.report_generator import ReportGenerator

        try:
            generator = ReportGenerator(args.output)
            paths = generator.generate_all_reports(report, submissions, args.prefix)
        except Exception as e:
            logger.error(f"Report generation failed: {e}")
            print(f"\n❌ Report generation failed: {e}")
            sys.exit(1)

        print("\n📁 Reports:")
        for kind, path in paths.items():
            print(f"  • {kind.upper()}: {path}")

    if report.status == ReportStatus.FAILED:
        print("\n❌ Every comparison failed")
        sys.exit(1)

    print("\n✅ Scan completed!")


def print_summary(report, submissions, threshold):
    """Print scan totals and the flagged pairs"""
    names = {s.id: s.student_name or s.file_name for s in submissions}
    flagged = sorted(report.flagged(threshold), key=lambda s: s.similarity_score, reverse=True)

    print(f"\n📊 Status: {report.status.value}")
    print(f"   Pairs compared: {report.total_pairs}")
    print(f"   Pairs reported: {len(report.similarities)}")
    print(f"   Failed pairs: {len(report.failures)}")
    print(f"   Time: {format_time(report.processing_time)}")

    print(f"\n🚩 Pairs at or above {format_percentage(threshold)}: {len(flagged)}")
    for similarity in flagged[:20]:
        level = classify_risk(similarity.similarity_score)
        print(f"  • {names.get(similarity.submission1_id)} <-> {names.get(similarity.submission2_id)}: "
              f"{format_percentage(similarity.similarity_score)} [{level.value}]")
    if len(flagged) > 20:
        print(f"  ... and {len(flagged) - 20} more")


def run_compare(args, logger):
    """Compare two files and show matching lines"""
    from utils.validators import validate_file

    for filepath in (args.file_a, args.file_b):
        is_valid, error = validate_file(filepath)
        if not is_valid:
            print(f"Error: {error}")
            sys.exit(1)

    loader = SubmissionLoader()
    first = loader.load_file(args.file_a, submission_id=1)
    second = loader.load_file(args.file_b, submission_id=2)
    if first is None or second is None:
        print("Error: both files must contain code")
        sys.exit(1)

    engine = PlagiarismEngine(load_config(args))
    similarities = engine.detect_plagiarism([first, second])
    if not similarities:
        logger.error(f"Comparison of {args.file_a} and {args.file_b} failed")
        print("\n❌ Comparison failed, see log for details")
        sys.exit(1)
    similarity = similarities[0]

    print(f"\n📄 {Path(args.file_a).name} <-> {Path(args.file_b).name}")
    print("="*50)
    print(f"Combined: {format_percentage(similarity.similarity_score)} "
          f"[{classify_risk(similarity.similarity_score).value}]")
    print(f"Jaccard:  {format_percentage(similarity.jaccard_score)}")
    print(f"LCS:      {format_percentage(similarity.lcs_score)}")

    lines_a = split_lines(first.code_content)
    print(f"\nMatching regions: {len(similarity.highlight_data)}")
    for region in similarity.highlight_data.matches:
        print(f"  • lines {region.submission1_line_start + 1}-{region.submission1_line_end + 1} "
              f"<-> {region.submission2_line_start + 1}-{region.submission2_line_end + 1}")
        if region.submission1_line_start < len(lines_a):
            print(f"      {lines_a[region.submission1_line_start].strip()[:70]}")


def run_tests(args, logger):
    """Run tests"""
    print("\n🧪 Running tests...")
    print("="*50)

    import pytest

    test_dir = Path(__file__).parent / "tests"

    if not test_dir.exists():
        print(f"Error: Test directory not found: {test_dir}")
        sys.exit(1)

    pytest_args = []

    if args.unit:
        for name in ("test_tokenizer.py", "test_similarity_calculator.py",
                     "test_highlight_generator.py", "test_plagiarism_engine.py",
                     "test_submission_loader.py", "test_report_generator.py"):
            pytest_args.append(str(test_dir / name))
    elif args.integration:
        pytest_args.append(str(test_dir / "test_integration.py"))
    else:
        pytest_args.append(str(test_dir))

    exit_code = pytest.main(pytest_args)
    sys.exit(exit_code)


def show_version():
    """Show version information"""
    from codechecker import __version__, __author__, __license__

    print(f"\n📊 Code Plagiarism Checker")
    print("="*30)
    print(f"Version: {__version__}")
    print(f"Author: {__author__}")
    print(f"License: {__license__}")
    print("\nToken-based source code similarity detection")
    print("with line-level evidence.")


if __name__ == "__main__":
    main()
