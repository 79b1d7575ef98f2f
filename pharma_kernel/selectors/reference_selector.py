"""
Module: pharma_kernel.selectors.reference_selector
Responsibility: Resolve site and item references and read item policies.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from pharma_kernel.domain.policy import ItemPolicy
from pharma_kernel.exceptions import ItemNotFoundError, SiteNotFoundError
from pharma_kernel.models.reference import ItemModel, SiteModel
from pharma_kernel.selectors.base import BaseSelector


class ReferenceSelector(BaseSelector[ItemModel]):

    def require_site(self, site_id: UUID) -> SiteModel:
        site = self.session.get(SiteModel, site_id)
        if site is None:
            raise SiteNotFoundError(str(site_id))
        return site

    def require_item(self, item_id: UUID) -> ItemModel:
        item = self.session.get(ItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    def get_policy(self, item_id: UUID) -> ItemPolicy:
        """
        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        return ItemPolicy.from_model(self.require_item(item_id))
