#!/usr/bin/env python3
"""
Run the loan-approval example: load the model and execute fixture test cases.

Usage (from project root):
  python scripts/demo.py

Output: formatted table of results and a short evaluation report.
"""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

MODEL_PATH = ROOT / "models" / "loan_approval.json"
FIXTURES_PATH = ROOT / "tests" / "fixtures" / "loan_approval_cases.json"
REPORT_PATH = ROOT / "logs" / "loan-approval-demo-report.txt"


def main() -> None:
    if not MODEL_PATH.exists():
        print(f"Error: Model not found at {MODEL_PATH}")
        sys.exit(1)
    if not FIXTURES_PATH.exists():
        print(f"Error: Fixtures not found at {FIXTURES_PATH}")
        sys.exit(1)

    from dmn_engine.errors import DmnError
    from dmn_engine.services.evaluator_service import ModelEvaluator
    from dmn_engine.services.test_service import load_test_cases, run_test_case

    evaluator = ModelEvaluator()
    try:
        graph = evaluator.load_file(MODEL_PATH)
    except DmnError as e:
        print(f"Error: Model rejected: {e}")
        sys.exit(1)
    cases = load_test_cases(FIXTURES_PATH)

    print(f"Model: {graph.name} ({graph.namespace})")
    print(f"Invocables: {', '.join(graph.names())}")
    print(f"Running {len(cases)} test cases...\n")

    results = [(tc, run_test_case(evaluator, graph.name, tc)) for tc in cases]

    # Table
    col_id = 24
    col_pass = 6
    col_actual = 30
    col_time = 10
    header = f"{'Case ID':<{col_id}} {'Pass':<{col_pass}} {'Actual':<{col_actual}} {'Time (ms)':<{col_time}}"
    print(header)
    print("-" * (col_id + col_pass + col_actual + col_time))
    for tc, r in results:
        actual = str(r.actual_error or r.actual)[: col_actual - 2]
        print(f"{tc.id:<{col_id}} {'Yes' if r.passed else 'No':<{col_pass}} {actual:<{col_actual}} {r.execution_time_ms:<{col_time}.2f}")

    passed = sum(1 for _, r in results if r.passed)
    total = len(results)
    print()
    print(f"Summary: {passed}/{total} passed")

    # Report
    lines = [
        "DMN Engine Loan Approval Demo: Evaluation Report",
        "=" * 50,
        f"Model: {MODEL_PATH}",
        f"Fixtures: {FIXTURES_PATH}",
        f"Total cases: {total}",
        f"Passed: {passed}",
        f"Failed: {total - passed}",
        "",
        "Failed cases:",
    ]
    for tc, r in results:
        if not r.passed:
            lines.append(f"  - {tc.id}: {r.error_message or 'result mismatch'}")
            lines.append(f"    Expected: {r.expected_error or r.expected}")
            lines.append(f"    Actual: {r.actual_error or r.actual}")
    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text("\n".join(lines), encoding="utf-8")
    print(f"\nReport written to {REPORT_PATH}")
    print("Done.")


if __name__ == "__main__":
    main()
