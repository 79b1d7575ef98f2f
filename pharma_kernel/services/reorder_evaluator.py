"""
ReorderEvaluator -- evaluates a (site, item) scope against its reorder policy.

Responsibility:
    Projects current stock, reads the item policy and hands both to the pure
    ``evaluate_reorder`` function.  Read-only: it produces events but never
    publishes them; MovementWriter publishes after its commit.

Invariants enforced:
    - Idempotent: evaluating the same ledger and policy twice yields equal
      evaluations (events compare equal given the same clock reading).
    - Triggered iff stock <= reorder_point (site-wide item total).
"""

from uuid import UUID

from sqlalchemy.orm import Session

from pharma_kernel.domain.clock import Clock
from pharma_kernel.domain.reorder import DEFAULT_DAYS_PER_MONTH, ReorderEvaluation, evaluate_reorder
from pharma_kernel.logging_config import get_logger
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.selectors.stock_selector import StockSelector

logger = get_logger("services.reorder_evaluator")


class ReorderEvaluator:

    def __init__(
        self,
        session: Session,
        clock: Clock,
        days_per_month: int = DEFAULT_DAYS_PER_MONTH,
    ):
        self._session = session
        self._clock = clock
        self._days_per_month = days_per_month

    def evaluate(self, site_id: UUID, item_id: UUID) -> ReorderEvaluation:
        """
        Raises:
            SiteNotFoundError / ItemNotFoundError: Unresolvable reference.
        """
        references = ReferenceSelector(self._session)
        references.require_site(site_id)
        policy = references.get_policy(item_id)
        stock = StockSelector(self._session).project(site_id, item_id)

        evaluation = evaluate_reorder(
            site_id=site_id,
            policy=policy,
            stock=stock,
            occurred_at=self._clock.now(),
            days_per_month=self._days_per_month,
        )
        if evaluation.triggered:
            logger.info(
                "low_stock_detected",
                extra={
                    "site_id": str(site_id),
                    "item_id": str(item_id),
                    "stock": stock,
                    "reorder_point": policy.reorder_point,
                    "days_coverage": evaluation.days_coverage,
                    "proposed_qty": evaluation.shortfall_qty if evaluation.proposal else None,
                },
            )
        return evaluation
