# backend/modules/complaints/tests/test_complaint_service.py

from datetime import date, datetime, timedelta

import pytest

from core.exceptions import ConflictError, NotFoundError
from modules.orders.enums.order_enums import OrderType
from tests.factories import OrderFactory, TableFactory
from ..models.complaint_models import ComplaintPriority, ComplaintStatus, IssueType
from ..schemas.complaint_schemas import ComplaintCreate, ComplaintUpdate
from ..services.complaint_service import ComplaintService


@pytest.fixture
def service(db_session):
    return ComplaintService(db_session)


@pytest.fixture
def table_order(db_session):
    table = TableFactory()
    return OrderFactory(
        restaurant_id=table.restaurant_id,
        table_id=table.id,
        table_number=table.table_number,
        order_type=OrderType.DINE_IN.value,
        served=True,
    )


def report(order, **kwargs):
    return ComplaintCreate(
        order_id=order.id,
        issue_type=kwargs.pop("issue_type", IssueType.FOOD_QUALITY),
        description=kwargs.pop("description", "  Dal was cold  "),
        **kwargs,
    )


class TestCreateComplaint:

    def test_copies_restaurant_and_table_from_order(self, service, table_order):
        complaint = service.create_complaint(report(table_order, reported_by="waiter-3"))

        assert complaint.restaurant_id == table_order.restaurant_id
        assert complaint.table_id == table_order.table_id
        assert complaint.table_number == table_order.table_number
        assert complaint.description == "Dal was cold"
        assert complaint.priority == ComplaintPriority.MEDIUM.value
        assert complaint.status == ComplaintStatus.OPEN.value
        assert complaint.resolved_at is None

    def test_unknown_order(self, service, db_session):
        with pytest.raises(NotFoundError):
            service.create_complaint(ComplaintCreate(
                order_id="missing", issue_type=IssueType.OTHER, description="Nobody came",
            ))

    def test_one_complaint_per_order(self, service, table_order):
        service.create_complaint(report(table_order))

        with pytest.raises(ConflictError) as exc_info:
            service.create_complaint(report(table_order, issue_type=IssueType.WAIT_TIME))

        assert exc_info.value.error_code == "COMPLAINT_EXISTS"

    def test_blank_description_is_rejected(self, table_order):
        with pytest.raises(ValueError):
            report(table_order, description="   ")


class TestUpdateComplaint:

    def test_resolving_stamps_resolved_at_once(self, service, table_order):
        complaint = service.create_complaint(report(table_order))

        resolved = service.update_complaint(complaint.id, ComplaintUpdate(
            status=ComplaintStatus.RESOLVED, action_taken="Replaced the dish",
        ))
        stamped = resolved.resolved_at
        assert stamped is not None
        assert resolved.action_taken == "Replaced the dish"

        again = service.update_complaint(complaint.id, ComplaintUpdate(status=ComplaintStatus.RESOLVED))
        assert again.resolved_at == stamped

    def test_reopening_clears_resolved_at(self, service, table_order):
        complaint = service.create_complaint(report(table_order))
        service.update_complaint(complaint.id, ComplaintUpdate(status=ComplaintStatus.RESOLVED))

        reopened = service.update_complaint(complaint.id, ComplaintUpdate(status=ComplaintStatus.IN_PROGRESS))

        assert reopened.status == "in_progress"
        assert reopened.resolved_at is None

    def test_priority_change_leaves_status(self, service, table_order):
        complaint = service.create_complaint(report(table_order))

        updated = service.update_complaint(complaint.id, ComplaintUpdate(priority=ComplaintPriority.HIGH))

        assert updated.priority == "high"
        assert updated.status == "open"

    def test_unknown_complaint(self, service, db_session):
        with pytest.raises(NotFoundError):
            service.update_complaint(999, ComplaintUpdate(status=ComplaintStatus.RESOLVED))


class TestListComplaints:

    def test_filters_and_newest_first(self, service, db_session):
        table = TableFactory()
        orders = [
            OrderFactory(restaurant_id=table.restaurant_id, table_id=table.id) for _ in range(3)
        ]
        first = service.create_complaint(report(orders[0], priority=ComplaintPriority.HIGH))
        second = service.create_complaint(report(orders[1]))
        third = service.create_complaint(report(orders[2], priority=ComplaintPriority.HIGH))
        service.update_complaint(third.id, ComplaintUpdate(status=ComplaintStatus.RESOLVED))
        elsewhere = OrderFactory()
        service.create_complaint(report(elsewhere))

        everything = service.list_complaints(table.restaurant_id)
        assert [c.id for c in everything] == [third.id, second.id, first.id]

        high = service.list_complaints(table.restaurant_id, priority=ComplaintPriority.HIGH)
        assert {c.id for c in high} == {first.id, third.id}

        still_open = service.list_complaints(table.restaurant_id, status=ComplaintStatus.OPEN)
        assert {c.id for c in still_open} == {first.id, second.id}

    def test_date_bounds_are_whole_days(self, service, db_session, table_order):
        complaint = service.create_complaint(report(table_order))
        complaint.created_at = datetime.combine(date(2024, 3, 10), datetime.max.time()) - timedelta(seconds=1)
        db_session.commit()

        same_day = service.list_complaints(
            table_order.restaurant_id, start_date=date(2024, 3, 10), end_date=date(2024, 3, 10)
        )
        next_day = service.list_complaints(table_order.restaurant_id, start_date=date(2024, 3, 11))

        assert [c.id for c in same_day] == [complaint.id]
        assert next_day == []
