"""
Shared fixtures for the test suite.
"""

import pytest

from codechecker import EngineConfig, PlagiarismEngine, Submission


FACTORIAL = """def factorial(n):
    if n <= 1:
        return 1
    return n * factorial(n - 1)
"""

FACTORIAL_RENAMED = """def fact(k):
    if k <= 1:
        return 1
    return k * fact(k - 1)
"""

BUBBLE_SORT = """def bubble_sort(items):
    for i in range(len(items)):
        for j in range(len(items) - i - 1):
            if items[j] > items[j + 1]:
                items[j], items[j + 1] = items[j + 1], items[j]
    return items
"""

GREETING = """class Greeter:
    def __init__(self, name):
        self.name = name

    def greet(self):
        print("Hello, " + self.name)
"""


class FixedClock:
    """Deterministic millisecond clock"""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(clock):
    return PlagiarismEngine(EngineConfig(), clock=clock)


@pytest.fixture
def make_submission():
    def _make(id, code, student_id=None, **kwargs):
        return Submission.from_code(id, code, student_id=student_id, assignment_id=1,
                                    file_name=f"s{id}.py", **kwargs)
    return _make


@pytest.fixture
def submissions(make_submission):
    """Four submissions: two near-copies and two unrelated programs"""
    return [
        make_submission(1, FACTORIAL),
        make_submission(2, FACTORIAL_RENAMED),
        make_submission(3, BUBBLE_SORT),
        make_submission(4, GREETING),
    ]
