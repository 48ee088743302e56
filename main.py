#!/usr/bin/env python3
"""
Main entry point for the Code Plagiarism Checker.
Can be used as a module or directly from command line.
"""

if __name__ == "__main__":
    # If called directly, use the CLI
    from cli import main
    main()
else:
    # If imported as a module, expose the main classes
    from codechecker import (
        PlagiarismEngine,
        PythonTokenizer,
        SimilarityCalculator,
        HighlightGenerator,
        SubmissionLoader,
        EngineConfig
    )

    __all__ = [
        'PlagiarismEngine',
        'PythonTokenizer',
        'SimilarityCalculator',
        'HighlightGenerator',
        'SubmissionLoader',
        'EngineConfig'
    ]
