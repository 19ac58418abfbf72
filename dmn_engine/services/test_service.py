"""
Conformance test case execution for loaded models.

- run_test_case: evaluate one invocable with the case's inputs, compare the
  result (or the error code) to the expectation.
- run_all_tests: run a suite, aggregate, optional comparison to a previous run.
- load_test_cases: read a JSON list of cases.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional, Union

from dmn_engine.errors import DmnError
from dmn_engine.models.definitions import TestCase
from dmn_engine.services.evaluator_service import ModelEvaluator
from dmn_engine.services.feel_service import feel_equal, to_feel

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# TestResult model
# -----------------------------------------------------------------------------


class TestResult:
    """Result of running a single test case."""

    __test__ = False

    __slots__ = (
        "test_case_id",
        "passed",
        "actual",
        "expected",
        "actual_error",
        "expected_error",
        "execution_time_ms",
        "error_message",
    )

    def __init__(
        self,
        test_case_id: str,
        passed: bool,
        actual: Any,
        expected: Any,
        actual_error: Optional[str],
        expected_error: Optional[str],
        execution_time_ms: float,
        error_message: Optional[str] = None,
    ):
        self.test_case_id = test_case_id
        self.passed = passed
        self.actual = actual
        self.expected = expected
        self.actual_error = actual_error
        self.expected_error = expected_error
        self.execution_time_ms = execution_time_ms
        self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_case_id": self.test_case_id,
            "passed": self.passed,
            "actual": self.actual,
            "expected": self.expected,
            "actual_error": self.actual_error,
            "expected_error": self.expected_error,
            "execution_time_ms": self.execution_time_ms,
            "error_message": self.error_message,
        }


class TestSuite:
    """Aggregated results of running all test cases for a model."""

    __test__ = False

    def __init__(
        self,
        model: str,
        results: list[TestResult],
        total: int,
        passed: int,
        failed: int,
        breaking_changes: Optional[list[str]] = None,
    ):
        self.model = model
        self.results = results
        self.total = total
        self.passed = passed
        self.failed = failed
        self.breaking_changes = breaking_changes or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "breaking_changes": self.breaking_changes,
            "results": [r.to_dict() for r in self.results],
        }


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


def run_test_case(evaluator: ModelEvaluator, model: str, test_case: TestCase) -> TestResult:
    """
    Evaluate '<model>/<test_case.invocable>' with test_case.input_values.
    Passes when the result equals expected (FEEL equality), or when the
    raised error's code equals expected_error.
    """
    start = time.perf_counter()
    actual: Any = None
    actual_error: Optional[str] = None
    error_message: Optional[str] = None
    try:
        actual = evaluator.evaluate(f"{model}/{test_case.invocable}", test_case.input_values)
    except DmnError as e:
        actual_error = e.code
        error_message = str(e)

    elapsed_ms = (time.perf_counter() - start) * 1000
    if test_case.expected_error is not None:
        passed = actual_error == test_case.expected_error
    else:
        passed = actual_error is None and feel_equal(actual, to_feel(test_case.expected)) is True
    if not passed:
        logger.debug("Test case %s failed: actual=%r error=%s", test_case.id, actual, error_message)

    return TestResult(
        test_case_id=test_case.id,
        passed=passed,
        actual=actual,
        expected=test_case.expected,
        actual_error=actual_error,
        expected_error=test_case.expected_error,
        execution_time_ms=elapsed_ms,
        error_message=error_message,
    )


def run_all_tests(
    evaluator: ModelEvaluator,
    model: str,
    test_cases: list[TestCase],
    previous_results: Optional[list[dict]] = None,
) -> TestSuite:
    """Run all test cases; optionally compare to previous_results for breaking changes."""
    results: list[TestResult] = []
    for tc in test_cases:
        results.append(run_test_case(evaluator, model, tc))
    passed = sum(1 for r in results if r.passed)
    failed = len(results) - passed
    breaking: list[str] = []
    if previous_results:
        prev_by_id = {r.get("test_case_id"): r for r in previous_results}
        for r in results:
            if not r.passed and prev_by_id.get(r.test_case_id, {}).get("passed"):
                breaking.append(f"Test {r.test_case_id} was passing, now failing")
    return TestSuite(
        model=model,
        results=results,
        total=len(results),
        passed=passed,
        failed=failed,
        breaking_changes=breaking,
    )


def load_test_cases(path: Union[str, Path]) -> list[TestCase]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return [TestCase.model_validate(item) for item in data]
