"""Tests for model evaluation: dependency order, BKMs, decision services, workspace."""

import logging
import shutil
from decimal import Decimal

import pytest

from dmn_engine.errors import DmnTypeError, EvaluationError, InvocableNotFoundError
from dmn_engine.models.definitions import (
    Binding,
    BoxedContext,
    BusinessKnowledgeModel,
    ContextEntry,
    Decision,
    DecisionService,
    Definitions,
    FunctionDefinition,
    InputData,
    Invocation,
    LiteralExpression,
    Parameter,
)
from dmn_engine.services.evaluator_service import ModelEvaluator, evaluate_invocable
from tests.conftest import load_fixture

LOAN_NS = "https://example.com/dmn/loan-approval"
LOAN_INPUTS = {"Applicant Age": 30, "Monthly Income": 3000, "Requested Amount": 12000, "Credit Score": 720}


def _literal(text: str) -> LiteralExpression:
    return LiteralExpression(text=text)


# -----------------------------------------------------------------------------
# Scenarios
# -----------------------------------------------------------------------------


def test_literal_decision_ignores_context(evaluator):
    assert evaluator.evaluate("compatibility/Decision1", {}) == "foo bar"
    assert evaluator.evaluate("compatibility/Decision1", {"anything": 1}) == "foo bar"


def test_age_classification(evaluator):
    ns = "https://example.com/dmn/age-classification"
    assert evaluator.evaluate_invocable(ns, "Age Category", {"Age": 10}) == "minor"
    assert evaluator.evaluate_invocable(ns, "Age Category", {"Age": 18}) == "adult"
    assert evaluator.evaluate_invocable(ns, "Age Category", {}) is None


def test_loan_decision(evaluator):
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Decision", LOAN_INPUTS) == "APPROVED"
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Decision", {**LOAN_INPUTS, "Credit Score": 550}) == "DECLINED"
    assert evaluator.evaluate_invocable(LOAN_NS, "Monthly Installment", LOAN_INPUTS) == Decimal(1000)


def test_bkm_target_takes_parameters_from_context(evaluator):
    assert evaluator.evaluate("Loan Approval/Installment", {"amount": 1200, "months": 12}) == Decimal(100)


def test_unknown_invocable(evaluator):
    with pytest.raises(InvocableNotFoundError):
        evaluator.evaluate_invocable(LOAN_NS, "Interest Rate", {})
    with pytest.raises(InvocableNotFoundError):
        evaluator.evaluate_invocable("urn:unknown", "Loan Decision", {})
    with pytest.raises(LookupError):
        evaluator.evaluate("Unknown Model/Decision1", {})
    with pytest.raises(InvocableNotFoundError):
        evaluator.evaluate("no-separator", {})


def test_missing_inputs_are_null(evaluator):
    assert evaluator.evaluate_invocable(LOAN_NS, "Affordability", {}) is None


def test_caller_values_for_decisions_are_ignored(evaluator):
    inputs = {**LOAN_INPUTS, "Risk Level": "HIGH", "Monthly Installment": 999999}
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Decision", inputs) == "APPROVED"


# -----------------------------------------------------------------------------
# Decision services
# -----------------------------------------------------------------------------


def test_decision_service_single_output(evaluator):
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Service", LOAN_INPUTS) == "APPROVED"


def test_decision_service_uses_supplied_input_decision(evaluator):
    # Credit Score alone would give LOW risk
    inputs = {**LOAN_INPUTS, "Risk Level": "HIGH"}
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Service", inputs) == "DECLINED"


def test_decision_service_ignores_values_for_internal_decisions(evaluator):
    inputs = {**LOAN_INPUTS, "Affordability": False, "Monthly Installment": 999999}
    assert evaluator.evaluate_invocable(LOAN_NS, "Loan Service", inputs) == "APPROVED"


def test_decision_service_several_outputs(evaluator):
    result = evaluator.evaluate_invocable(LOAN_NS, "Affordability Service", LOAN_INPUTS)
    assert result == {"Monthly Installment": Decimal(1000), "Affordability": True}


def test_decision_service_invoked_as_function():
    definitions = Definitions(
        name="Services",
        namespace="https://example.com/dmn/services",
        input_data=[InputData(name="Price", type_ref="number")],
        decisions=[
            Decision(name="Doubled", required_inputs=["Price"], expression=_literal("Price * 2")),
            Decision(
                name="Quote",
                required_knowledge=["Double Service"],
                expression=Invocation(
                    callee="Double Service",
                    bindings=[Binding(name="Price", value=_literal("21"))],
                ),
            ),
        ],
        decision_services=[
            DecisionService(name="Double Service", output_decisions=["Doubled"], input_data=["Price"])
        ],
    )
    assert evaluate_invocable(definitions, "Quote", {"Price": 1}) == Decimal(42)


# -----------------------------------------------------------------------------
# Dependency evaluation
# -----------------------------------------------------------------------------


def _diamond() -> Definitions:
    return Definitions(
        name="Diamond",
        namespace="https://example.com/dmn/diamond",
        input_data=[InputData(name="x", type_ref="number")],
        decisions=[
            Decision(name="Base", required_inputs=["x"], expression=_literal("x + 1")),
            Decision(name="Left", required_decisions=["Base"], expression=_literal("Base * 2")),
            Decision(name="Right", required_decisions=["Base"], expression=_literal("Base * 3")),
            Decision(name="Top", required_decisions=["Left", "Right"], expression=_literal("Left + Right")),
        ],
    )


def test_each_dependency_evaluated_once_in_order(caplog):
    evaluator = ModelEvaluator()
    evaluator.load(_diamond())
    with caplog.at_level(logging.DEBUG, logger="dmn_engine.services.evaluator_service"):
        result = evaluator.evaluate_invocable("https://example.com/dmn/diamond", "Top", {"x": 1})
    assert result == Decimal(10)
    steps = [
        record.args[1]
        for record in caplog.records
        if record.msg == "%s: evaluating %s (%d of %d)"
    ]
    assert sorted(steps) == ["Base", "Left", "Right"]
    assert steps[0] == "Base"


def test_bkm_with_context_body():
    definitions = Definitions(
        name="Tax",
        namespace="https://example.com/dmn/tax",
        input_data=[InputData(name="Net", type_ref="number")],
        business_knowledge_models=[
            BusinessKnowledgeModel(
                name="Gross",
                type_ref="number",
                encapsulated_logic=FunctionDefinition(
                    parameters=[Parameter(name="net", type_ref="number"), Parameter(name="rate", type_ref="number")],
                    body=BoxedContext(
                        entries=[
                            ContextEntry(name="tax", value=_literal("net * rate")),
                            ContextEntry(value=_literal("net + tax")),
                        ]
                    ),
                ),
            ),
        ],
        decisions=[
            Decision(
                name="Invoice",
                required_inputs=["Net"],
                required_knowledge=["Gross"],
                expression=BoxedContext(
                    entries=[
                        ContextEntry(name="net", value=_literal("Net")),
                        ContextEntry(name="gross", value=_literal("Gross(Net, 0.2)")),
                    ]
                ),
            )
        ],
    )
    assert evaluate_invocable(definitions, "Invoice", {"Net": 100}) == {
        "net": Decimal(100),
        "gross": Decimal(120),
    }


def test_type_mismatch_degrades_to_null():
    definitions = Definitions(
        name="Typed",
        namespace="https://example.com/dmn/typed",
        input_data=[InputData(name="Amount", type_ref="number")],
        decisions=[
            Decision(name="Label", type_ref="number", expression=_literal('"text"')),
            Decision(name="Echo", required_inputs=["Amount"], expression=_literal("Amount")),
        ],
    )
    assert evaluate_invocable(definitions, "Label", {}) is None
    assert evaluate_invocable(definitions, "Echo", {"Amount": "12"}) is None
    with pytest.raises(DmnTypeError):
        evaluate_invocable(definitions, "Label", {}, strict_types=True)


def test_failing_dependency_names_the_invocable():
    definitions = Definitions(
        name="Failing",
        namespace="https://example.com/dmn/failing",
        input_data=[InputData(name="f")],
        decisions=[
            Decision(name="Inner", required_inputs=["f"], expression=_literal("f(1)")),
            Decision(name="Outer", required_decisions=["Inner"], expression=_literal("Inner")),
        ],
    )
    with pytest.raises(EvaluationError) as exc:
        evaluate_invocable(definitions, "Outer", {"f": 3})
    assert exc.value.invocable == "Inner"
    assert "evaluation of 'Inner' failed" in str(exc.value)


# -----------------------------------------------------------------------------
# Workspace
# -----------------------------------------------------------------------------


def test_load_replaces_model_atomically(evaluator):
    before = evaluator.evaluate("compatibility/Decision1", {})
    replacement = load_fixture("compatibility.json")
    replacement.decisions[0].expression = _literal('"baz"')
    evaluator.load(replacement)
    assert before == "foo bar"
    assert evaluator.evaluate("compatibility/Decision1", {}) == "baz"


def test_unload(evaluator):
    assert evaluator.unload("https://example.com/dmn/compatibility") is True
    assert evaluator.unload("https://example.com/dmn/compatibility") is False
    with pytest.raises(InvocableNotFoundError):
        evaluator.evaluate("compatibility/Decision1", {})


def test_invocables_listing(evaluator):
    paths = {entry["path"] for entry in evaluator.invocables()}
    assert "compatibility/Decision1" in paths
    assert "Loan Approval/Loan Service" in paths
    kinds = {entry["name"]: entry["kind"] for entry in evaluator.invocables()}
    assert kinds["Installment"] == "business knowledge model"


def test_load_directory_reports_invalid_files(fixtures_dir, tmp_path):
    for name in ("compatibility.json", "item_definition_cycle.json"):
        shutil.copy(fixtures_dir / name, tmp_path / name)
    (tmp_path / "not_json.json").write_text("{", encoding="utf-8")
    evaluator = ModelEvaluator()
    report = evaluator.load_directory(tmp_path)
    assert report.loaded == ["compatibility"]
    assert set(report.errors) == {"item_definition_cycle.json", "not_json.json"}
    assert evaluator.evaluate("compatibility/Decision1", {}) == "foo bar"
