"""
预订引擎测试
覆盖组预订、入住、退房、取消、未到店与付款
"""
import re
import threading
import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import sessionmaker

from hotel_module.errors import (
    ValidationError, NotFoundError, RoomUnavailableError,
    InvalidTransitionError, InvalidStateError
)
from hotel_module.models.ontology import (
    Booking, BookingStatus, PaymentStatus, Room, RoomStatus,
    HousekeepingTask, TaskStatus, TaskType, TaskPriority, Customer, BookingCounter
)
from hotel_module.models.schemas import BookingCreate, CustomerCreate
from hotel_module.services.booking_service import BookingService, apportion, derive_payment_status
from hotel_module.services.room_service import RoomService


@pytest.fixture
def service(db_session, tenant_id, noop_publisher):
    return BookingService(db_session, tenant_id, event_publisher=noop_publisher)


def _request(customer, rooms, check_in, days=2, **kwargs):
    return BookingCreate(
        customer_id=customer.id,
        room_ids=[r.id for r in rooms],
        check_in_date=check_in,
        number_of_days=days,
        **kwargs
    )


class TestApportion:

    def test_sum_preserved(self):
        shares = apportion(Decimal("100.00"), [Decimal("100"), Decimal("100"), Decimal("100")])
        assert sum(shares) == Decimal("100.00")
        assert shares[:2] == [Decimal("33.33"), Decimal("33.33")]
        assert shares[2] == Decimal("33.34")

    def test_zero_amount(self):
        assert apportion(Decimal("0"), [Decimal("10"), Decimal("20")]) == [Decimal("0.00"), Decimal("0.00")]

    def test_payment_status_derivation(self):
        assert derive_payment_status(Decimal("0"), Decimal("100")) == PaymentStatus.PENDING
        assert derive_payment_status(Decimal("40"), Decimal("100")) == PaymentStatus.PARTIAL
        assert derive_payment_status(Decimal("100"), Decimal("100")) == PaymentStatus.PAID
        assert derive_payment_status(Decimal("120"), Decimal("100")) == PaymentStatus.PAID


class TestCreateGroupBooking:

    def test_one_row_per_room_sharing_number(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))

        assert len(rows) == 2
        assert len({r.check_in_number for r in rows}) == 1
        assert all(r.status == BookingStatus.CONFIRMED for r in rows)
        assert re.fullmatch(r"CHK-\d{8}-\d{4}", rows[0].check_in_number)

    def test_pricing_and_dates(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow, days=2))
        by_number = {r.room_number: r for r in rows}

        assert by_number["101"].room_rent == Decimal("200.00")
        assert by_number["102"].room_rent == Decimal("400.00")
        assert by_number["101"].total_amount == by_number["101"].room_rent
        assert all(r.check_out_date == tomorrow + timedelta(days=2) for r in rows)

    def test_room_status_untouched(self, service, db_session, sample_rooms, sample_customer, tomorrow):
        service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        db_session.expire_all()
        assert all(r.status == RoomStatus.AVAILABLE for r in db_session.query(Room).all())

    def test_check_in_numbers_increment(self, service, sample_rooms, sample_customer, tomorrow):
        first = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        second = service.create_group_booking(_request(sample_customer, sample_rooms[1:], tomorrow))
        assert first[0].check_in_number.endswith("-0001")
        assert second[0].check_in_number.endswith("-0002")

    def test_counter_row_inserted_concurrently(self, service, db_session, tenant_id, monkeypatch,
                                               sample_rooms, sample_customer, tomorrow):
        """当天计数行被另一请求抢先插入时，改为递增而不是失败"""
        key = date.today().strftime("%Y%m%d")
        db_session.add(BookingCounter(tenant_id=tenant_id, key=key, seq=4))
        db_session.commit()

        real_bump = service._bump_counter
        calls = []

        def stale_bump(counter_key):
            calls.append(counter_key)
            if len(calls) == 1:
                # 模拟 UPDATE 时计数行尚不存在
                return real_bump("00000000")
            return real_bump(counter_key)

        monkeypatch.setattr(service, "_bump_counter", stale_bump)
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))

        assert rows[0].check_in_number == f"CHK-{key}-0005"
        assert calls == [key, key]
        counter = db_session.query(BookingCounter).filter(BookingCounter.key == key).one()
        assert counter.seq == 5

    def test_advance_apportioned(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(
            _request(sample_customer, sample_rooms, tomorrow, days=1, advance_amount=Decimal("150"))
        )
        by_number = {r.room_number: r for r in rows}
        assert by_number["101"].advance_amount == Decimal("50.00")
        assert by_number["102"].advance_amount == Decimal("100.00")
        assert all(r.paid_amount == r.advance_amount for r in rows)
        assert all(r.payment_status == PaymentStatus.PARTIAL for r in rows)

    def test_advance_over_total_rejected(self, service, db_session, sample_rooms, sample_customer, tomorrow):
        with pytest.raises(ValidationError) as exc:
            service.create_group_booking(
                _request(sample_customer, sample_rooms, tomorrow, days=1, advance_amount=Decimal("301"))
            )
        assert "advance_amount" in exc.value.errors
        assert db_session.query(Booking).count() == 0

    def test_overlap_rejects_whole_group(self, service, db_session, sample_rooms, sample_customer):
        """101 已有 [day2, day4)，请求 101+102 的 [day1, day3) 整组失败"""
        day1 = date.today() + timedelta(days=10)
        room_101, room_102 = sample_rooms
        service.create_group_booking(_request(sample_customer, [room_101], day1 + timedelta(days=1), days=2))

        with pytest.raises(RoomUnavailableError) as exc:
            service.create_group_booking(_request(sample_customer, [room_101, room_102], day1, days=2))

        assert exc.value.details["room_numbers"] == ["101"]
        assert db_session.query(Booking).filter(Booking.room_id == room_102.id).count() == 0
        assert db_session.query(Booking).count() == 1

    def test_adjacent_ranges_both_succeed(self, service, sample_rooms, sample_customer):
        d1 = date.today() + timedelta(days=5)
        room = sample_rooms[0]
        service.create_group_booking(_request(sample_customer, [room], d1, days=2))
        rows = service.create_group_booking(_request(sample_customer, [room], d1 + timedelta(days=2), days=2))
        assert rows[0].status == BookingStatus.CONFIRMED

    def test_cancelled_booking_frees_room(self, service, sample_rooms, sample_customer, tomorrow):
        room = sample_rooms[0]
        rows = service.create_group_booking(_request(sample_customer, [room], tomorrow))
        service.cancel(rows[0].id)
        again = service.create_group_booking(_request(sample_customer, [room], tomorrow))
        assert again[0].check_in_number != rows[0].check_in_number

    def test_maintenance_room_unavailable(self, service, db_session, tenant_id, sample_rooms,
                                          sample_customer, tomorrow, noop_publisher):
        RoomService(db_session, tenant_id, noop_publisher).set_status(sample_rooms[1].id, RoomStatus.MAINTENANCE)
        with pytest.raises(RoomUnavailableError):
            service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        assert db_session.query(Booking).count() == 0

    def test_duplicate_rooms_rejected(self, service, sample_rooms, sample_customer, tomorrow):
        request = BookingCreate(
            customer_id=sample_customer.id,
            room_ids=[sample_rooms[0].id, sample_rooms[0].id],
            check_in_date=tomorrow,
            number_of_days=1
        )
        with pytest.raises(ValidationError):
            service.create_group_booking(request)

    def test_unknown_room(self, service, sample_rooms, sample_customer, tomorrow):
        request = BookingCreate(customer_id=sample_customer.id, room_ids=[sample_rooms[0].id, 999],
                                check_in_date=tomorrow, number_of_days=1)
        with pytest.raises(NotFoundError):
            service.create_group_booking(request)

    def test_other_tenant_room_not_found(self, db_session, sample_rooms, sample_customer, tomorrow, noop_publisher):
        other = BookingService(db_session, "seaside-inn", event_publisher=noop_publisher)
        request = BookingCreate(customer_data=CustomerCreate(first_name="A", last_name="B", phone="1"),
                                room_ids=[sample_rooms[0].id], check_in_date=tomorrow, number_of_days=1)
        with pytest.raises(NotFoundError):
            other.create_group_booking(request)
        # 内联客人随失败一起回滚
        assert db_session.query(Customer).filter(Customer.tenant_id == "seaside-inn").count() == 0

    def test_unknown_customer(self, service, sample_rooms, tomorrow):
        request = BookingCreate(customer_id=999, room_ids=[sample_rooms[0].id],
                                check_in_date=tomorrow, number_of_days=1)
        with pytest.raises(NotFoundError):
            service.create_group_booking(request)

    def test_inline_customer_created(self, service, db_session, sample_rooms, tomorrow):
        request = BookingCreate(
            customer_data=CustomerCreate(first_name="Mei", last_name="Chen", phone="13900000000"),
            room_ids=[sample_rooms[0].id],
            check_in_date=tomorrow,
            number_of_days=1,
            male_count=1,
            female_count=1,
            child_count=1
        )
        rows = service.create_group_booking(request)
        customer = db_session.get(Customer, rows[0].customer_id)
        assert customer.full_name == "Mei Chen"
        assert rows[0].party_size == 3

    def test_inactive_agent_rejected(self, service, db_session, sample_rooms, sample_customer,
                                     sample_agent, tomorrow):
        sample_agent.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow, agent_id=sample_agent.id))

    def test_group_view_with_commission(self, service, sample_rooms, sample_customer, sample_agent, tomorrow):
        rows = service.create_group_booking(
            _request(sample_customer, sample_rooms, tomorrow, days=2, agent_id=sample_agent.id,
                     advance_amount=Decimal("100"))
        )
        group = service.get_group(rows[0].check_in_number)

        assert group["room_count"] == 2
        assert group["total_amount"] == Decimal("600.00")
        assert group["advance_amount"] == Decimal("100.00")
        assert group["agent_commission"] == Decimal("60.00")
        assert group["customer_name"] == "Wei Zhang"

    def test_group_total_excludes_cancelled(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow, days=1))
        service.cancel(rows[0].id)
        group = service.get_group(rows[0].check_in_number)
        assert group["total_amount"] == Decimal("200.00")
        assert group["room_count"] == 2

    def test_group_events_published(self, db_session, tenant_id, sample_rooms, sample_customer, tomorrow):
        events = []
        service = BookingService(db_session, tenant_id, event_publisher=events.append)
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        assert events[-1].event_type == "booking.group_created"
        assert events[-1].data["booking_ids"] == [r.id for r in rows]


class TestCheckIn:

    def test_group_check_in(self, service, db_session, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        result = service.check_in(rows[0].check_in_number)

        assert all(r.status == BookingStatus.CHECKED_IN for r in result)
        assert all(r.checked_in_at is not None for r in result)
        db_session.expire_all()
        assert all(r.status == RoomStatus.OCCUPIED for r in db_session.query(Room).all())

    def test_any_row_id_resolves_group(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        result = service.check_in_by_booking(rows[1].id)
        assert [r.status for r in result] == [BookingStatus.CHECKED_IN, BookingStatus.CHECKED_IN]

    def test_repeat_check_in_is_noop(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        service.check_in(rows[0].check_in_number)
        again = service.check_in(rows[0].check_in_number)
        assert all(r.status == BookingStatus.CHECKED_IN for r in again)

    def test_no_confirmed_rows_invalid_state(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        service.cancel(rows[0].id)
        with pytest.raises(InvalidStateError):
            service.check_in(rows[0].check_in_number)

    def test_cancelled_row_skipped(self, service, db_session, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        service.cancel(rows[1].id)
        result = service.check_in(rows[0].check_in_number)

        assert [r.status for r in result] == [BookingStatus.CHECKED_IN, BookingStatus.CANCELLED]
        db_session.expire_all()
        assert db_session.get(Room, sample_rooms[1].id).status == RoomStatus.AVAILABLE

    def test_dirty_room_blocks_whole_group(self, service, db_session, tenant_id, sample_rooms,
                                           sample_customer, tomorrow, noop_publisher):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        RoomService(db_session, tenant_id, noop_publisher).set_status(sample_rooms[1].id, RoomStatus.DIRTY)

        with pytest.raises(RoomUnavailableError):
            service.check_in(rows[0].check_in_number)

        db_session.expire_all()
        assert all(r.status == BookingStatus.CONFIRMED for r in service.get_group_rows(rows[0].check_in_number))
        assert db_session.get(Room, sample_rooms[0].id).status == RoomStatus.AVAILABLE

    def test_unknown_group(self, service):
        with pytest.raises(NotFoundError):
            service.check_in("CHK-00000000-0000")


class TestCheckOut:

    def test_full_lifecycle_scenario(self, service, db_session, tenant_id, sample_rooms,
                                     sample_customer, tomorrow, noop_publisher):
        from hotel_module.services.task_service import TaskService

        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        number = rows[0].check_in_number
        service.check_in(number)
        result = service.check_out(number)

        assert all(r.status == BookingStatus.CHECKED_OUT for r in result)
        db_session.expire_all()
        assert all(r.status == RoomStatus.DIRTY for r in db_session.query(Room).all())

        tasks = db_session.query(HousekeepingTask).all()
        assert len(tasks) == 2
        assert {t.room_id for t in tasks} == {r.id for r in sample_rooms}
        for task in tasks:
            assert number in task.notes
            assert task.check_in_number == number
            assert task.task_type == TaskType.CHECKOUT_CLEAN
            assert task.priority == TaskPriority.MEDIUM
            assert task.status == TaskStatus.PENDING

        task_service = TaskService(db_session, tenant_id, noop_publisher)
        first = next(t for t in tasks if t.room_id == sample_rooms[0].id)
        task_service.update_status(first.id, TaskStatus.COMPLETED)

        db_session.expire_all()
        assert db_session.get(Room, sample_rooms[0].id).status == RoomStatus.AVAILABLE
        assert db_session.get(Room, sample_rooms[1].id).status == RoomStatus.DIRTY

    def test_repeat_check_out_creates_no_extra_tasks(self, service, db_session, sample_rooms,
                                                     sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        number = rows[0].check_in_number
        service.check_in(number)
        service.check_out(number)
        service.check_out_by_booking(rows[1].id)

        assert db_session.query(HousekeepingTask).count() == 2

    def test_check_out_before_check_in_invalid_state(self, service, db_session, sample_rooms,
                                                     sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        with pytest.raises(InvalidStateError):
            service.check_out(rows[0].check_in_number)
        assert db_session.query(HousekeepingTask).count() == 0

    def test_checkout_ignores_payment(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        service.check_in(rows[0].check_in_number)
        result = service.check_out(rows[0].check_in_number)
        assert result[0].status == BookingStatus.CHECKED_OUT
        assert result[0].payment_status == PaymentStatus.PENDING

    def test_checkout_event_carries_tasks(self, db_session, tenant_id, sample_rooms, sample_customer, tomorrow):
        events = []
        service = BookingService(db_session, tenant_id, event_publisher=events.append)
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        service.check_in(rows[0].check_in_number)
        events.clear()
        service.check_out(rows[0].check_in_number)

        types = [e.event_type for e in events]
        assert types.count("room.status_changed") == 2
        assert types.count("task.created") == 2
        checked_out = events[-1]
        assert checked_out.event_type == "booking.checked_out"
        assert sorted(checked_out.data["room_ids"]) == sorted(r.id for r in sample_rooms)
        assert len(checked_out.data["task_ids"]) == 2

    def test_failing_subscriber_cannot_lose_tasks(self, db_session, tenant_id, sample_rooms,
                                                  sample_customer, tomorrow):
        def broken(event):
            if event.event_type == "booking.checked_out":
                raise RuntimeError("listener down")

        service = BookingService(db_session, tenant_id, event_publisher=broken)
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        service.check_in(rows[0].check_in_number)
        with pytest.raises(RuntimeError):
            service.check_out(rows[0].check_in_number)
        # 事务在发布前已提交
        assert db_session.query(HousekeepingTask).count() == 2


class TestSingleRowTransitions:

    def test_cancel(self, service, db_session, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow))
        booking = service.cancel(rows[0].id, reason="行程变更")

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancel_reason == "行程变更"
        assert booking.cancelled_at is not None
        assert service.get_booking(rows[1].id).status == BookingStatus.CONFIRMED
        db_session.expire_all()
        assert db_session.get(Room, sample_rooms[0].id).status == RoomStatus.AVAILABLE

    def test_no_show(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        booking = service.mark_no_show(rows[0].id)
        assert booking.status == BookingStatus.NO_SHOW
        assert booking.cancelled_at is None

    def test_cancel_after_check_in_rejected(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        service.check_in(rows[0].check_in_number)
        with pytest.raises(InvalidTransitionError) as exc:
            service.cancel(rows[0].id)
        assert exc.value.details["from"] == "CheckedIn"
        assert exc.value.details["to"] == "Cancelled"

    def test_terminal_states_are_final(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow))
        service.cancel(rows[0].id)
        with pytest.raises(InvalidTransitionError):
            service.mark_no_show(rows[0].id)
        with pytest.raises(InvalidTransitionError):
            service.cancel(rows[0].id)

    def test_unknown_booking(self, service):
        with pytest.raises(NotFoundError):
            service.cancel(12345)


class TestPayments:

    def test_record_payment_derives_status(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow, days=1))
        booking = service.record_payment(rows[0].id, Decimal("40"))
        assert booking.payment_status == PaymentStatus.PARTIAL
        booking = service.record_payment(rows[0].id, Decimal("100"))
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.balance == Decimal("0")
        assert booking.status == BookingStatus.CONFIRMED

    def test_refund(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms[:1], tomorrow, days=1))
        service.record_payment(rows[0].id, Decimal("100"))
        booking = service.refund(rows[0].id)
        assert booking.payment_status == PaymentStatus.REFUNDED
        assert booking.status == BookingStatus.CONFIRMED


class TestQueries:

    def test_filters(self, service, sample_rooms, sample_customer, tomorrow):
        rows = service.create_group_booking(_request(sample_customer, sample_rooms, tomorrow, days=2))
        service.cancel(rows[1].id)

        assert len(service.get_bookings(check_in_number=rows[0].check_in_number)) == 2
        assert len(service.get_bookings(status=BookingStatus.CANCELLED)) == 1
        assert len(service.get_bookings(customer_id=sample_customer.id)) == 2
        assert len(service.get_bookings(on_date=tomorrow + timedelta(days=1))) == 2
        assert service.get_bookings(on_date=tomorrow + timedelta(days=2)) == []


class TestConcurrency:

    def test_concurrent_bookings_single_winner(self, tmp_path, tenant_id, tomorrow):
        """两个并发请求预订同一房间同一日期，只有一个成功"""
        from sqlalchemy import create_engine
        from hotel_module.database import Base

        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        room = Room(tenant_id=tenant_id, number="101", floor=1, type="Single",
                    price_per_night=Decimal("100.00"), status=RoomStatus.AVAILABLE)
        customer = Customer(tenant_id=tenant_id, first_name="Wei", last_name="Zhang", phone="13800138000")
        setup.add_all([room, customer])
        setup.commit()
        room_id, customer_id = room.id, customer.id
        setup.close()

        results = []
        barrier = threading.Barrier(2)

        def worker():
            session = Session()
            try:
                service = BookingService(session, tenant_id, event_publisher=lambda e: None)
                barrier.wait()
                service.create_group_booking(BookingCreate(
                    customer_id=customer_id, room_ids=[room_id],
                    check_in_date=tomorrow, number_of_days=2
                ))
                results.append("ok")
            except RoomUnavailableError:
                results.append("unavailable")
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == ["ok", "unavailable"]
        check = Session()
        assert check.query(Booking).count() == 1
        check.close()
        engine.dispose()
