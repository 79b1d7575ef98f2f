"""MovementDraft shape validation."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from pharma_kernel.domain.movement import (
    AdjustSign,
    Direction,
    MovementDraft,
    Reason,
    RefKind,
)
from pharma_kernel.exceptions import (
    InvalidQuantityError,
    MissingAdjustSignError,
    UnexpectedAdjustSignError,
    ValidationError,
)


def _draft(**overrides) -> MovementDraft:
    fields = dict(
        site_id=uuid4(),
        item_id=uuid4(),
        direction=Direction.OUT,
        quantity=Decimal("5"),
        reason=Reason.CONSUMPTION,
        ref_kind=RefKind.ISSUE,
    )
    fields.update(overrides)
    return MovementDraft(**fields)


class TestQuantity:

    @pytest.mark.parametrize("quantity", [0, "0", -1, "-0.5", "abc", None, "NaN", "Infinity", True])
    def test_non_positive_or_non_numeric_rejected(self, quantity):
        with pytest.raises(InvalidQuantityError):
            _draft(quantity=quantity)

    def test_invalid_quantity_is_validation_error(self):
        with pytest.raises(ValidationError):
            _draft(quantity=0)

    def test_string_and_float_coerced_exactly(self):
        assert _draft(quantity="12.5").quantity == Decimal("12.5")
        assert _draft(quantity=0.1).quantity == Decimal("0.1")

    @pytest.mark.parametrize("quantity", ["0.0000000001", "0.0000000004", Decimal("1E-12")])
    def test_below_stored_precision_rejected(self, quantity):
        with pytest.raises(InvalidQuantityError):
            _draft(quantity=quantity)

    def test_rounded_to_stored_precision(self):
        assert _draft(quantity="0.0000000005").quantity == Decimal("0.000000001")
        assert _draft(quantity="2.1234567894").quantity == Decimal("2.123456789")


class TestVocabulary:

    @pytest.mark.parametrize(
        "field, value",
        [("direction", "SIDEWAYS"), ("reason", "THEFT"), ("ref_kind", "INVOICE")],
    )
    def test_unknown_value_is_validation_error(self, field, value):
        with pytest.raises(ValidationError, match=field):
            _draft(**{field: value})

    def test_unknown_adjust_sign_is_validation_error(self):
        with pytest.raises(ValidationError, match="adjust sign"):
            _draft(direction=Direction.ADJUST, adjust_sign="UP")

    def test_string_values_coerced(self):
        draft = _draft(direction="IN", reason="PURCHASE_RECEIPT", ref_kind="PO")
        assert draft.direction is Direction.IN
        assert draft.reason is Reason.PURCHASE_RECEIPT
        assert draft.ref_kind is RefKind.PO


class TestAdjustSign:

    def test_adjust_requires_sign(self):
        with pytest.raises(MissingAdjustSignError):
            _draft(direction=Direction.ADJUST)

    def test_sign_on_non_adjust_rejected(self):
        with pytest.raises(UnexpectedAdjustSignError):
            _draft(direction=Direction.IN, adjust_sign=AdjustSign.IN)

    def test_adjust_sign_coerced_from_string(self):
        draft = _draft(direction="ADJUST", adjust_sign="OUT", reason="ADJUST_NEG", ref_kind="ADJ")
        assert draft.adjust_sign is AdjustSign.OUT
        assert draft.signed_quantity == Decimal("-5")
        assert draft.is_decreasing


class TestDerived:

    def test_in_is_not_decreasing(self):
        draft = _draft(direction=Direction.IN, reason=Reason.PURCHASE_RECEIPT)
        assert draft.signed_quantity == Decimal("5")
        assert not draft.is_decreasing

    def test_blank_batch_label_becomes_none(self):
        assert _draft(batch_label="   ").batch_label is None

    def test_batch_label_trimmed(self):
        draft = _draft(batch_label=" L-01 ", expiry_date=date(2025, 6, 30))
        assert draft.batch_label == "L-01"
