"""
Submission assembly and batch submission.

assemble_submissions turns eligible selected lines into write payloads;
submit_batch sends them one line at a time. A failed line never stops the
batch and successful lines are never rolled back.

Synthetic lines sharing an order number are created together: one
create_order call per new section, then one write per line against the
record id the server assigned to its product.
"""

from typing import Any, Optional

import structlog

from models.allocation import AllocationEntry, AllocationState, ApprovalChecklist
from models.order_line import MISSING, ProductLine
from models.submission import (
    ApprovalChecklistPayload,
    BatchSubmissionReport,
    LineSubmissionResult,
    OrderCreationPayload,
    OrderProductPayload,
    SkippedLine,
    SubmissionBatch,
    SubmissionPayload,
    SubmissionPlan,
)
from models.workflow import WorkflowStage
from parsers.record_normalizer import RECORD_ID_FIELDS
from services.allocation_service import lines_for_group
from utils.text_utils import clean_text

logger = structlog.get_logger(__name__)

CHECKLIST_REJECTED = "Has rejection"


# ===================
# ASSEMBLY
# ===================

def _optional(value: str) -> Optional[str]:
    """Missing placeholder back to None for the wire."""
    return None if value == MISSING else value


def build_payload(
    line: ProductLine,
    entry: AllocationEntry,
    overall_remark: Optional[str] = None,
) -> SubmissionPayload:
    """
    Write payload for one eligible line.

    The chosen SKU falls back to the line's SKU, the line remark to the
    overall remark. The quoted unit rate falls back to the final rate.
    """
    final_rate = float(entry.final_rate)
    return SubmissionPayload(
        sku_name=entry.chosen_sku or line.sku_name,
        product_name=line.product_name,
        approval_qty=float(entry.approved_qty) if entry.approved_qty is not None else None,
        rate_per_unit=float(line.unit_rate) if line.unit_rate else final_rate,
        final_rate=final_rate,
        rate_floor=float(line.unit_floor_rate),
        remark=entry.remark or overall_remark or None,
    )


def build_checklist_payload(checklist: ApprovalChecklist) -> ApprovalChecklistPayload:
    """Checklist answers as the approval-stage columns."""
    return ApprovalChecklistPayload(
        rate_is_rightly_as_per_current_market_rate=checklist.rate == "approve",
        we_are_dealing_in_ordered_sku=checklist.sku == "approve",
        party_credit_status="Good" if checklist.credit == "approve" else "Poor",
        dispatch_date_confirmed=checklist.dispatch == "approve",
        overall_status_of_order="Approved" if checklist.overall == "approve" else "Rejected",
        order_confirmation_with_customer=checklist.confirm == "approve",
    )


def build_order_product(line: ProductLine, payload: SubmissionPayload) -> OrderProductPayload:
    return OrderProductPayload(
        product_name=line.product_name,
        oil_type=line.category,
        uom=_optional(line.uom),
        sku_name=payload.sku_name,
        order_quantity=payload.approval_qty,
        approval_qty=payload.approval_qty,
        rate_of_material=payload.final_rate,
    )


def build_order_creation(line: ProductLine, payload: SubmissionPayload) -> OrderCreationPayload:
    """Order-creation payload opening the section of a synthetic line."""
    ctx = line.context
    return OrderCreationPayload(
        order_no=line.order_number,
        customer_name=line.customer_name,
        order_type=_optional(ctx.order_type),
        customer_type=_optional(ctx.customer_type),
        order_type_delivery_purpose=_optional(ctx.delivery_purpose),
        start_date=_optional(ctx.start_date),
        end_date=_optional(ctx.end_date),
        delivery_date=_optional(ctx.delivery_date),
        party_so_date=_optional(ctx.party_so_date),
        customer_contact_person_name=_optional(ctx.contact_person),
        customer_contact_person_whatsapp_no=_optional(ctx.whatsapp_no),
        customer_address=_optional(ctx.customer_address),
        payment_terms=_optional(ctx.payment_terms),
        advance_payment_to_be_taken=ctx.advance_payment_taken,
        advance_amount=float(ctx.advance_amount) if ctx.advance_payment_taken else None,
        is_order_through_broker=ctx.is_broker_order,
        broker_name=_optional(ctx.broker_name) if ctx.is_broker_order else None,
        type_of_transporting=_optional(ctx.transport_type),
        remark=payload.remark,
        products=[build_order_product(line, payload)],
    )


def assemble_submissions(state: AllocationState, stage: WorkflowStage) -> SubmissionBatch:
    """
    Build the submission batch of a session.

    At the approval stage every plan carries the checklist columns, and a
    rejected checklist item moves every eligible line to skipped.

    Args:
        state: Evaluated allocation state
        stage: Workflow stage being submitted

    Returns:
        SubmissionBatch with one plan per eligible selected line in display
        order, one creation payload per new section, and every other
        selected line in skipped
    """
    batch = SubmissionBatch(stage=stage)
    blocked = state.blocked_lines

    checklist = None
    rejected = False
    if stage == WorkflowStage.APPROVAL:
        checklist = build_checklist_payload(state.checklist)
        rejected = state.checklist.has_rejection
        if rejected:
            logger.info("approval_checklist_rejected", items=state.checklist.rejected_items)

    for group in state.groups:
        for line in lines_for_group(state, group):
            entry = state.entries.get(line.line_id)
            if entry is None or not entry.selected:
                continue

            if line.line_id in blocked:
                batch.skipped.append(SkippedLine(line_id=line.line_id, reason=blocked[line.line_id]))
                continue

            if rejected:
                batch.skipped.append(SkippedLine(line_id=line.line_id, reason=CHECKLIST_REJECTED))
                continue

            payload = build_payload(line, entry, state.overall_remark)
            product_index = None
            if line.is_synthetic:
                creation = batch.new_sections.get(line.order_number)
                if creation is None:
                    batch.new_sections[line.order_number] = build_order_creation(line, payload)
                    product_index = 0
                else:
                    creation.products.append(build_order_product(line, payload))
                    product_index = len(creation.products) - 1

            batch.plans.append(SubmissionPlan(
                line_id=line.line_id,
                record_id=line.record_id,
                order_number=line.order_number,
                payload=payload,
                checklist=checklist,
                order_product_index=product_index,
            ))

    logger.info(
        "submissions_assembled",
        stage=stage.value,
        plans=len(batch.plans),
        new_sections=len(batch.new_sections),
        skipped=len(batch.skipped)
    )
    return batch


# ===================
# SUBMISSION
# ===================

def _record_id_of(candidate: Any) -> Optional[str]:
    if not isinstance(candidate, dict):
        return None
    for field in RECORD_ID_FIELDS:
        record_id = clean_text(candidate.get(field))
        if record_id:
            return record_id
    return None


def _created_items(data: Any) -> list:
    if isinstance(data, dict):
        for key in ("products", "orders", "records"):
            items = data.get(key)
            if isinstance(items, list) and items:
                return items
    return []


def created_record_id(data: Any) -> Optional[str]:
    """
    Record id from an order-creation response.

    Looks at the top level, then at a nested order/record object, then at
    the first entry of a products/orders/records list.
    """
    if not isinstance(data, dict):
        return None

    candidates = [data]
    candidates += [data[key] for key in ("order", "dispatch", "record") if isinstance(data.get(key), dict)]
    candidates += _created_items(data)[:1]

    for candidate in candidates:
        record_id = _record_id_of(candidate)
        if record_id:
            return record_id
    return None


def created_record_ids(data: Any, count: int) -> list[Optional[str]]:
    """
    Record ids of the products of a created order, in payload order.

    A single-product order accepts any id shape created_record_id reads.
    Larger orders need one entry per product in a products/orders/records
    list; positions the response does not cover are None.
    """
    if count == 1:
        return [created_record_id(data)]

    ids = [_record_id_of(item) for item in _created_items(data)[:count]]
    return ids + [None] * (count - len(ids))


def _failure(plan: SubmissionPlan, error: str, record_id: Optional[str] = None) -> LineSubmissionResult:
    return LineSubmissionResult(
        line_id=plan.line_id,
        order_number=plan.order_number,
        success=False,
        record_id=record_id,
        error=error,
    )


def submit_batch(batch: SubmissionBatch, gateway) -> BatchSubmissionReport:
    """
    Submit every plan sequentially.

    A new section is created the first time one of its lines comes up; a
    failed creation fails every line of that section without a retry.

    Args:
        batch: Assembled batch
        gateway: DispatchGateway used for the write calls

    Returns:
        BatchSubmissionReport with per-line outcomes
    """
    report = BatchSubmissionReport(stage=batch.stage, skipped=list(batch.skipped))
    created: dict[str, list[Optional[str]]] = {}
    creation_errors: dict[str, Exception] = {}

    logger.info(
        "batch_submission_started",
        stage=batch.stage.value,
        lines=len(batch.plans),
        new_sections=len(batch.new_sections)
    )

    for plan in batch.plans:
        record_id = plan.record_id

        if not plan.creates_order and not record_id:
            logger.warning("submission_line_skipped_no_id", line_id=plan.line_id)
            report.failed.append(_failure(plan, "Missing product ID"))
            continue

        try:
            if plan.creates_order:
                order_no = plan.order_number
                if order_no in creation_errors:
                    raise creation_errors[order_no]
                if order_no not in created:
                    creation = batch.new_sections[order_no]
                    try:
                        response = gateway.create_order(creation.model_dump())
                    except Exception as e:
                        creation_errors[order_no] = e
                        raise
                    created[order_no] = created_record_ids(response, len(creation.products))
                    logger.info(
                        "order_section_created",
                        order_number=order_no,
                        products=len(creation.products)
                    )

                record_id = created[order_no][plan.order_product_index]
                if not record_id:
                    raise ValueError("Created order returned no record id")

            body = plan.payload.model_dump()
            if plan.checklist is not None:
                body.update(plan.checklist.model_dump())
            gateway.submit(batch.stage, record_id, body)
        except Exception as e:
            error = getattr(e, "message", None) or str(e) or e.__class__.__name__
            logger.error(
                "submission_line_failed",
                line_id=plan.line_id,
                order_number=plan.order_number,
                error=error
            )
            report.failed.append(_failure(plan, error, record_id))
            continue

        report.succeeded.append(LineSubmissionResult(
            line_id=plan.line_id,
            order_number=plan.order_number,
            success=True,
            record_id=record_id,
        ))

    logger.info(
        "batch_submission_completed",
        stage=batch.stage.value,
        succeeded=len(report.succeeded),
        failed=len(report.failed),
        skipped=len(report.skipped)
    )
    return report
