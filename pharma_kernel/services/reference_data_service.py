"""
Service layer for site and item reference data.

The ledger only needs to resolve sites and items and read item policies, so
this is a deliberately small surface: register a site, register an item,
update an item's stocking policy.  Policy values go through ItemPolicy
before anything is written, so ``reorder_point >= safety_stock`` holds for
every stored item.

Returns SiteInfo / ItemInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from pharma_kernel.db.types import to_decimal
from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.exceptions import ValidationError
from pharma_kernel.logging_config import get_logger
from pharma_kernel.models.reference import ItemModel, SiteModel
from pharma_kernel.selectors.reference_selector import ReferenceSelector
from pharma_kernel.services.base import BaseService

logger = get_logger("services.reference_data")


@dataclass(frozen=True)
class SiteInfo:
    id: UUID
    code: str
    name: str
    is_active: bool


@dataclass(frozen=True)
class ItemInfo:
    id: UUID
    code: str
    name: str
    uom: str
    unit_cost: Decimal
    preferred_supplier_id: UUID | None
    policy: ItemPolicy


def _normalize_code(code: str, kind: str) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError(f"{kind} code is required")
    return normalized


class ReferenceDataService(BaseService[ItemModel]):
    """
    Registers sites and items and maintains item policies.

    Contract:
        Flushes, never commits.  Duplicate codes raise ValidationError
        before the insert is attempted.
    """

    def _to_site(self, site: SiteModel) -> SiteInfo:
        return SiteInfo(id=site.id, code=site.code, name=site.name, is_active=site.is_active)

    def _to_item(self, item: ItemModel) -> ItemInfo:
        return ItemInfo(
            id=item.id,
            code=item.code,
            name=item.name,
            uom=item.uom,
            unit_cost=item.unit_cost,
            preferred_supplier_id=item.preferred_supplier_id,
            policy=ItemPolicy.from_model(item),
        )

    def register_site(self, code: str, name: str, actor_id: UUID) -> SiteInfo:
        code = _normalize_code(code, "Site")
        exists = self.session.execute(
            select(SiteModel.id).where(SiteModel.code == code)
        ).scalar_one_or_none()
        if exists is not None:
            raise ValidationError(f"Site code already registered: {code}")

        site = SiteModel(id=uuid4(), code=code, name=name, is_active=True, created_by_id=actor_id)
        self.session.add(site)
        self.session.flush()
        logger.info("site_registered", extra={"site_id": str(site.id), "code": code})
        return self._to_site(site)

    def register_item(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        *,
        uom: str = "unit",
        unit_cost: Decimal | str | int = 0,
        reorder_point: Decimal | str | int = 0,
        safety_stock: Decimal | str | int = 0,
        avg_monthly_consumption: Decimal | str | int = 0,
        preferred_supplier_id: UUID | None = None,
    ) -> ItemInfo:
        """
        Register an item with its stocking policy.

        Raises:
            InvalidPolicyError: Negative values or reorder_point < safety_stock.
            ValidationError: Duplicate or empty code, negative unit cost.
        """
        code = _normalize_code(code, "Item")
        item_id = uuid4()
        policy = ItemPolicy(
            item_id=item_id,
            reorder_point=reorder_point,
            safety_stock=safety_stock,
            avg_monthly_consumption=avg_monthly_consumption,
            preferred_supplier_id=preferred_supplier_id,
        )
        cost = to_decimal(unit_cost)
        if cost < 0:
            raise ValidationError(f"unit_cost must be >= 0, got {unit_cost}")

        exists = self.session.execute(
            select(ItemModel.id).where(ItemModel.code == code)
        ).scalar_one_or_none()
        if exists is not None:
            raise ValidationError(f"Item code already registered: {code}")

        item = ItemModel(
            id=item_id,
            code=code,
            name=name,
            uom=uom,
            unit_cost=cost,
            preferred_supplier_id=preferred_supplier_id,
            reorder_point=policy.reorder_point,
            safety_stock=policy.safety_stock,
            avg_monthly_consumption=policy.avg_monthly_consumption,
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "item_registered",
            extra={
                "item_id": str(item.id),
                "code": code,
                "reorder_point": policy.reorder_point,
                "safety_stock": policy.safety_stock,
            },
        )
        return self._to_item(item)

    def update_policy(
        self,
        item_id: UUID,
        actor_id: UUID,
        *,
        reorder_point: Decimal | str | int | None = None,
        safety_stock: Decimal | str | int | None = None,
        avg_monthly_consumption: Decimal | str | int | None = None,
        preferred_supplier_id: UUID | None = None,
    ) -> ItemInfo:
        """
        Change an item's policy.  Omitted values keep their current setting.
        Affects future guard and reorder decisions only.

        Raises:
            ItemNotFoundError: Unknown item.
            InvalidPolicyError: The resulting policy is inconsistent.
        """
        item = ReferenceSelector(self.session).require_item(item_id)
        current = ItemPolicy.from_model(item)
        policy = ItemPolicy(
            item_id=item.id,
            reorder_point=current.reorder_point if reorder_point is None else reorder_point,
            safety_stock=current.safety_stock if safety_stock is None else safety_stock,
            avg_monthly_consumption=(
                current.avg_monthly_consumption
                if avg_monthly_consumption is None
                else avg_monthly_consumption
            ),
            preferred_supplier_id=(
                current.preferred_supplier_id
                if preferred_supplier_id is None
                else preferred_supplier_id
            ),
        )

        item.reorder_point = policy.reorder_point
        item.safety_stock = policy.safety_stock
        item.avg_monthly_consumption = policy.avg_monthly_consumption
        item.preferred_supplier_id = policy.preferred_supplier_id
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "item_policy_updated",
            extra={
                "item_id": str(item.id),
                "reorder_point": policy.reorder_point,
                "safety_stock": policy.safety_stock,
                "avg_monthly_consumption": policy.avg_monthly_consumption,
            },
        )
        return self._to_item(item)
