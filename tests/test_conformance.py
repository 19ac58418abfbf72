"""Tests for running conformance test cases against a loaded model."""

from dmn_engine.models.definitions import TestCase
from dmn_engine.services.test_service import load_test_cases, run_all_tests, run_test_case


def test_fixture_cases_all_pass(evaluator, fixtures_dir):
    cases = load_test_cases(fixtures_dir / "loan_approval_cases.json")
    suite = run_all_tests(evaluator, "Loan Approval", cases)
    failures = [r.to_dict() for r in suite.results if not r.passed]
    assert failures == []
    assert suite.total == len(cases)
    assert suite.passed == suite.total


def test_expected_error_code(evaluator):
    case = TestCase(id="missing", invocable="Interest Rate", expected_error="invocable_not_found")
    result = run_test_case(evaluator, "Loan Approval", case)
    assert result.passed
    assert result.actual_error == "invocable_not_found"


def test_breaking_changes_reported(evaluator):
    case = TestCase(id="wrong", invocable="Risk Level", input_values={"Credit Score": 800}, expected="HIGH")
    previous = [{"test_case_id": "wrong", "passed": True}]
    suite = run_all_tests(evaluator, "Loan Approval", [case], previous_results=previous)
    assert suite.failed == 1
    assert suite.breaking_changes == ["Test wrong was passing, now failing"]
