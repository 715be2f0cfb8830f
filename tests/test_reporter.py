"""
Reconciliation outcome reporter tests

Run:
    python -m pytest tests/test_reporter.py -v
"""
import pytest

from src.core.models import (
    LadderLevel,
    ReconciliationOutcome,
    ReconciliationReport,
    StepKind,
    StepResult,
)
from src.sync.reporter import classify, log_report, summarize


def report_with(main=None, tp2=None, tp3=None, cancel_error=False):
    """main/tp2/tp3: None = not attempted, True/False = step outcome"""
    report = ReconciliationReport()
    if main is not None:
        report.main_attempted = True
        report.main_updated = main
        report.record(StepResult(StepKind.MAIN_SL_TP, ok=main, error=None if main else "[10001] bad"))
    for level, ok in ((LadderLevel.TP2, tp2), (LadderLevel.TP3, tp3)):
        if ok is None:
            continue
        if cancel_error:
            report.record(StepResult(StepKind.CANCEL_LADDER, ok=False, level=level, error="[110001] gone"))
        report.ladder_attempted.append(level)
        report.ladder_updated[level] = ok
        report.record(StepResult(StepKind.PLACE_LADDER, ok=ok, level=level, error=None if ok else "[110017] x"))
    return report


class TestClassify:

    @pytest.mark.parametrize("kwargs,expected", [
        (dict(), ReconciliationOutcome.SUCCESS),
        (dict(main=True, tp2=True, tp3=True), ReconciliationOutcome.SUCCESS),
        (dict(tp2=True), ReconciliationOutcome.SUCCESS),
        (dict(main=False, tp2=True, tp3=True), ReconciliationOutcome.PARTIAL_SUCCESS),
        (dict(main=True, tp2=False), ReconciliationOutcome.PARTIAL_SUCCESS),
        (dict(main=False, tp2=False, tp3=False), ReconciliationOutcome.FAILURE),
        (dict(main=False), ReconciliationOutcome.FAILURE),
        (dict(tp2=True, tp3=True, cancel_error=True), ReconciliationOutcome.PARTIAL_SUCCESS),
    ])
    def test_outcomes(self, kwargs, expected):
        assert classify(report_with(**kwargs)) == expected


class TestSummary:

    def test_summary_is_plain_data(self):
        report = report_with(main=True, tp2=True)
        report.new_client_order_ids[LadderLevel.TP2] = "tp2_1700000000000"

        summary = summarize(report)

        assert summary["outcome"] == "success"
        assert summary["main_updated"] is True
        assert summary["ladder_updated"] == {"TP2": True, "TP3": False}
        assert summary["new_client_order_ids"] == {"TP2": "tp2_1700000000000"}
        assert [s["step"] for s in summary["steps"]] == ["MainSlTp", "PlaceLadder(TP2)"]

    def test_errors_are_labelled_by_step(self):
        summary = summarize(report_with(main=False, tp3=True))

        assert summary["errors"] == ["MainSlTp: [10001] bad"]
        assert summary["outcome"] == "partial_success"

    def test_log_report_returns_outcome(self):
        assert log_report(report_with(main=False), "BTCUSDT") == ReconciliationOutcome.FAILURE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
