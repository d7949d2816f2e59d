from __future__ import annotations

import csv
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from cotiz.domain.contracts import EligibilityResult, EligibilitySummary, RequiredDocument
from cotiz.domain.gateway import GatewayError, QuoteGateway
from cotiz.observability import bind_request_id, current_request_id, observe_gateway_call
from cotiz.ui_strings import error_message, get_ui_text, status_label
from cotiz.validators import format_date_br, parse_date


logger = logging.getLogger(__name__)


class EligibilityEvaluator:
    """Classifies one supplier against the letter's required documents.

    Any port failure or malformed answer degrades to ``not_checked``; nothing is retried.
    """

    def __init__(self, gateway: QuoteGateway) -> None:
        self.gateway = gateway

    def evaluate(
        self,
        supplier_id: str,
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> EligibilityResult:
        try:
            payload = self.gateway.get_supplier_eligibility_for_letter(
                supplier_id,
                client_id,
                list(required_documents),
            )
            result = EligibilityResult.from_dict(supplier_id, payload)
        except (GatewayError, ValueError, TypeError, AttributeError) as exc:
            observe_gateway_call("get_supplier_eligibility_for_letter", "degraded")
            logger.warning(
                "eligibility_check_failed",
                extra={"supplier_id": supplier_id, "client_id": client_id, "details": str(exc)},
            )
            return EligibilityResult.not_checked(supplier_id, error_message("eligibility_unavailable"))
        observe_gateway_call("get_supplier_eligibility_for_letter", "ok")
        return result


def summarize(results: Iterable[EligibilityResult]) -> EligibilitySummary:
    counts: Dict[str, int] = {"eligible": 0, "pending": 0, "ineligible": 0, "not_checked": 0}
    for result in results:
        key = result.status if result.status in counts else "not_checked"
        counts[key] += 1
    return EligibilitySummary(total=sum(counts.values()), **counts)


class EligibilityAggregator:
    def __init__(self, evaluator: EligibilityEvaluator, max_workers: int = 8) -> None:
        self.evaluator = evaluator
        self.max_workers = max(1, int(max_workers or 1))

    def evaluate_all(
        self,
        supplier_ids: Sequence[str],
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> List[EligibilityResult]:
        unique_ids = list(dict.fromkeys(str(sid) for sid in supplier_ids if str(sid or "").strip()))
        if not unique_ids:
            return []
        documents = list(required_documents)
        request_id = current_request_id(default="n/a")

        def _evaluate(supplier_id: str) -> EligibilityResult:
            with bind_request_id(request_id):
                return self.evaluator.evaluate(supplier_id, client_id, documents)

        workers = min(self.max_workers, len(unique_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="eligibility") as pool:
            # map() yields in submission order and only after each call finished.
            return list(pool.map(_evaluate, unique_ids))

    def summary(
        self,
        supplier_ids: Sequence[str],
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> tuple[EligibilitySummary, List[EligibilityResult]]:
        if not supplier_ids or not required_documents:
            return EligibilitySummary(), []
        results = self.evaluate_all(supplier_ids, client_id, required_documents)
        return summarize(results), results

    def filter_eligible_only(
        self,
        supplier_ids: Sequence[str],
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> tuple[List[str], List[EligibilityResult]]:
        results = self.evaluate_all(supplier_ids, client_id, required_documents)
        eligible_ids = [result.supplier_id for result in results if result.status == "eligible"]
        return eligible_ids, results


def _percent(count: int, total: int) -> str:
    if total <= 0:
        return "0%"
    return f"{round(count * 100 / total)}%"


def export_eligibility_report(
    letter: dict,
    results: Sequence[EligibilityResult],
    *,
    generated_at: datetime | None = None,
) -> str:
    """CSV report of a letter's supplier eligibility, one row per supplier."""
    generated = generated_at or datetime.now()
    required = [RequiredDocument.from_dict(item) for item in (letter.get("required_documents") or [])]
    mandatory = [doc for doc in required if doc.mandatory]
    summary = summarize(results)

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";")
    writer.writerow([get_ui_text("report.eligibility_title")])
    writer.writerow([get_ui_text("label.generated_at"), generated.strftime("%d/%m/%Y %H:%M")])
    writer.writerow([])
    writer.writerow([get_ui_text("label.letter_number"), letter.get("letter_number") or ""])
    writer.writerow([get_ui_text("label.letter_title"), letter.get("title") or ""])
    if letter.get("category"):
        writer.writerow([get_ui_text("label.category"), letter["category"]])
    deadline = parse_date(letter.get("deadline"))
    if deadline:
        writer.writerow([get_ui_text("label.deadline"), format_date_br(deadline)])
    writer.writerow([])

    writer.writerow([get_ui_text("label.mandatory_documents")])
    for index, doc in enumerate(mandatory, start=1):
        writer.writerow([index, doc.label])
    writer.writerow([])

    writer.writerow([get_ui_text("label.status_summary")])
    for status in ("eligible", "pending", "ineligible", "not_checked"):
        count = getattr(summary, status)
        writer.writerow([status_label("elegibilidade", status), count, _percent(count, summary.total)])
    writer.writerow([])

    writer.writerow(
        [get_ui_text("label.supplier"), "Status", get_ui_text("label.score")] + [doc.label for doc in mandatory]
    )
    for result in results:
        by_type = {detail.type: detail for detail in result.documents}
        row = [
            result.supplier_name or result.supplier_id,
            status_label("elegibilidade", result.status),
            f"{result.score}%",
        ]
        for doc in mandatory:
            detail = by_type.get(doc.type)
            row.append(status_label("documento", detail.status if detail else "missing"))
        writer.writerow(row)
    return buffer.getvalue()
