"""
Reconciliation Outcome Reporter

Pure classification of a ReconciliationReport plus a logging helper.
"""
from typing import Any, Dict

import structlog

from src.core.models import ReconciliationOutcome, ReconciliationReport

logger = structlog.get_logger(__name__)


def classify(report: ReconciliationReport) -> ReconciliationOutcome:
    """
    SUCCESS: no errors and every attempted update succeeded (nothing attempted counts)
    FAILURE: something was attempted and nothing succeeded
    PARTIAL_SUCCESS: everything in between, including cancel-only errors
    """
    attempted = len(report.ladder_attempted) + (1 if report.main_attempted else 0)
    succeeded = sum(1 for lvl in report.ladder_attempted if report.ladder_updated.get(lvl))
    if report.main_attempted and report.main_updated:
        succeeded += 1

    if attempted == 0:
        return ReconciliationOutcome.SUCCESS if not report.errors else ReconciliationOutcome.FAILURE
    if succeeded == 0:
        return ReconciliationOutcome.FAILURE
    if succeeded == attempted and not report.errors:
        return ReconciliationOutcome.SUCCESS
    return ReconciliationOutcome.PARTIAL_SUCCESS


def summarize(report: ReconciliationReport) -> Dict[str, Any]:
    """Machine-readable outcome for callers and logs"""
    outcome = classify(report)
    summary = report.to_dict()
    summary["outcome"] = outcome.value
    return summary


def log_report(report: ReconciliationReport, symbol: str) -> ReconciliationOutcome:
    outcome = classify(report)
    fields = dict(
        symbol=symbol,
        outcome=outcome.value,
        main_updated=report.main_updated,
        ladder_updated={lvl.value: ok for lvl, ok in report.ladder_updated.items()},
        new_client_order_ids={lvl.value: cid for lvl, cid in report.new_client_order_ids.items()},
        errors=report.errors,
    )
    if outcome == ReconciliationOutcome.SUCCESS:
        logger.info("reconciliation_complete", **fields)
    elif outcome == ReconciliationOutcome.PARTIAL_SUCCESS:
        logger.warning("reconciliation_partial", **fields)
    else:
        logger.error("reconciliation_failed", **fields)
    return outcome
