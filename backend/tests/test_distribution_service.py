"""
Distribution workflow tests.

LIFECYCLE: pending -> distributed -> completed, or pending -> cancelled.
"""

import pytest

from stockpos.errors import (
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from stockpos.models import ProductDistribution, StockAdjustment
from stockpos.services import distribution_service, ledger_service


def _distribute(db_session, product, admin, cashier, quantity=30):
    distribution = distribution_service.create_distribution(
        product_id=product.id,
        quantity=quantity,
        cashier_id=cashier.id,
        distributed_by=admin.id,
        notes="Morning batch",
    )
    db_session.commit()
    return distribution


class TestCreateDistribution:

    def test_moves_storage_and_links_adjustment(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)

        assert distribution.status == "pending"
        assert distribution.adjustment is not None
        assert distribution.adjustment.adjustment_type == "distribution"
        assert distribution.adjustment.distribution_id == distribution.id
        assert ledger_service.get_product_stock(stocked_product.id) == {
            "storage": 70, "distribution": 30, "returned": 0, "rejected": 0,
        }

    def test_insufficient_storage_leaves_nothing(self, db_session, stocked_product, admin, cashier):
        with pytest.raises(InsufficientStockError):
            distribution_service.create_distribution(
                product_id=stocked_product.id,
                quantity=101,
                cashier_id=cashier.id,
                distributed_by=admin.id,
            )
        db_session.rollback()

        assert db_session.query(ProductDistribution).count() == 0
        assert ledger_service.get_product_stock(stocked_product.id)["storage"] == 100

    def test_target_must_be_cashier(self, db_session, stocked_product, admin):
        with pytest.raises(ValidationError, match="not a cashier"):
            distribution_service.create_distribution(
                product_id=stocked_product.id, quantity=1,
                cashier_id=admin.id, distributed_by=admin.id,
            )

    def test_inactive_cashier_refused(self, db_session, stocked_product, admin, inactive_cashier):
        with pytest.raises(ValidationError, match="inactive"):
            distribution_service.create_distribution(
                product_id=stocked_product.id, quantity=1,
                cashier_id=inactive_cashier.id, distributed_by=admin.id,
            )

    def test_cashier_cannot_distribute(self, db_session, stocked_product, cashier, other_cashier):
        with pytest.raises(PermissionDeniedError):
            distribution_service.create_distribution(
                product_id=stocked_product.id, quantity=1,
                cashier_id=other_cashier.id, distributed_by=cashier.id,
            )

    def test_unknown_cashier(self, db_session, stocked_product, admin):
        with pytest.raises(NotFoundError):
            distribution_service.create_distribution(
                product_id=stocked_product.id, quantity=1,
                cashier_id=999_999, distributed_by=admin.id,
            )


class TestAdvanceDistribution:

    def test_full_forward_path(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)

        distribution_service.advance_distribution(
            distribution_id=distribution.id, new_status="distributed", actor_id=admin.id,
        )
        db_session.commit()
        assert distribution.status == "distributed"
        assert distribution.distributed_at is not None

        distribution_service.advance_distribution(
            distribution_id=distribution.id, new_status="completed", actor_id=cashier.id,
        )
        db_session.commit()
        assert distribution.status == "completed"
        assert distribution.completed_by_user_id == cashier.id

    def test_status_changes_do_not_move_stock(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        for status in ("distributed", "completed"):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status=status, actor_id=admin.id,
            )
        db_session.commit()

        assert ledger_service.get_product_stock(stocked_product.id)["distribution"] == 30
        assert db_session.query(StockAdjustment).filter_by(distribution_id=distribution.id).count() == 1

    def test_cannot_skip_distributed(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        with pytest.raises(InvalidTransitionError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status="completed", actor_id=admin.id,
            )

    @pytest.mark.parametrize("target", ["pending", "distributed", "completed", "cancelled"])
    def test_completed_is_terminal(self, db_session, stocked_product, admin, cashier, target):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        for status in ("distributed", "completed"):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status=status, actor_id=admin.id,
            )
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status=target, actor_id=admin.id,
            )
        db_session.rollback()
        assert db_session.get(ProductDistribution, distribution.id).status == "completed"

    def test_unknown_status(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        with pytest.raises(ValidationError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status="shipped", actor_id=admin.id,
            )

    def test_cashier_cannot_mark_distributed(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        with pytest.raises(PermissionDeniedError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status="distributed", actor_id=cashier.id,
            )

    def test_only_assigned_cashier_completes(self, db_session, stocked_product, admin, cashier, other_cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        distribution_service.advance_distribution(
            distribution_id=distribution.id, new_status="distributed", actor_id=admin.id,
        )
        db_session.commit()

        with pytest.raises(PermissionDeniedError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status="completed", actor_id=other_cashier.id,
            )

    def test_unknown_distribution(self, db_session, admin):
        with pytest.raises(NotFoundError):
            distribution_service.advance_distribution(
                distribution_id=999_999, new_status="distributed", actor_id=admin.id,
            )


class TestCancelDistribution:

    def test_cancel_is_net_zero(self, db_session, stocked_product, admin, cashier):
        before = ledger_service.get_product_stock(stocked_product.id)
        distribution = _distribute(db_session, stocked_product, admin, cashier, quantity=25)

        distribution_service.cancel_distribution(
            distribution_id=distribution.id, actor_id=admin.id, reason="Wrong product",
        )
        db_session.commit()

        assert ledger_service.get_product_stock(stocked_product.id) == before
        assert distribution.status == "cancelled"
        assert distribution.cancellation_reason == "Wrong product"

        reversal = distribution.reversal_adjustment
        assert reversal is not None
        assert reversal.reversal_of_id == distribution.adjustment.id
        assert (reversal.source_location, reversal.target_location) == ("cashier", "storage")
        assert ledger_service.verify_product_stock(stocked_product.id)["consistent"] is True

    def test_only_pending_can_be_cancelled(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        distribution_service.advance_distribution(
            distribution_id=distribution.id, new_status="distributed", actor_id=admin.id,
        )
        db_session.commit()

        with pytest.raises(InvalidStateError):
            distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=admin.id)

    def test_cannot_cancel_twice(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=admin.id)
        db_session.commit()

        with pytest.raises(InvalidStateError):
            distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=admin.id)

    def test_cancelled_cannot_advance(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=admin.id)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            distribution_service.advance_distribution(
                distribution_id=distribution.id, new_status="distributed", actor_id=admin.id,
            )

    def test_cashier_cannot_cancel(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier)
        with pytest.raises(PermissionDeniedError):
            distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=cashier.id)

    def test_cancel_after_units_returned(self, db_session, stocked_product, admin, cashier):
        distribution = _distribute(db_session, stocked_product, admin, cashier, quantity=30)
        ledger_service.create_stock_adjustment(
            product_id=stocked_product.id, adjustment_type="return", quantity=10,
            created_by_user_id=cashier.id,
        )
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            distribution_service.cancel_distribution(distribution_id=distribution.id, actor_id=admin.id)
        db_session.rollback()

        assert db_session.get(ProductDistribution, distribution.id).status == "pending"


class TestListDistributions:

    def test_filters(self, db_session, stocked_product, admin, cashier, other_cashier):
        first = _distribute(db_session, stocked_product, admin, cashier, quantity=5)
        _distribute(db_session, stocked_product, admin, other_cashier, quantity=6)
        distribution_service.cancel_distribution(distribution_id=first.id, actor_id=admin.id)
        db_session.commit()

        assert len(distribution_service.list_distributions()) == 2
        assert [d.quantity for d in distribution_service.list_distributions(cashier_id=cashier.id)] == [5]
        assert [d.quantity for d in distribution_service.list_distributions(status="pending")] == [6]

        with pytest.raises(ValidationError):
            distribution_service.list_distributions(status="lost")
