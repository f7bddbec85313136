"""
Unit Tests for the Schedule Engine

Covers:
1. Calendar arithmetic and trigger validation
2. Pure evaluation (calendar, usage hours, combined)
3. Overdue work order requests and the overdue sweep
4. Schedule store operations (create, update, list, tenant scoping)
"""
import pytest
from pydantic import ValidationError as SchemaValidationError
from datetime import date, datetime, timedelta
from decimal import Decimal

from app.core.status_config import WorkOrderPriority
from app.exceptions import NotFoundError, ValidationError
from app.models.maintenance import MaintenanceSchedule
from app.models.work_order import WorkOrder
from app.schemas.maintenance import (
    FrequencyUnit,
    ScheduleCreate,
    ScheduleFilters,
    ScheduleStatus,
    ScheduleType,
    ScheduleUpdate,
)
from app.services import schedule_engine
from app.services.schedule_engine import (
    URGENCY,
    add_interval,
    complete_schedule,
    evaluate,
    validate_schedule_triggers,
    work_order_request_for,
)

from tests.factories import create_test_equipment, create_test_schedule, days_ago


def _schedule(**fields) -> MaintenanceSchedule:
    """Unsaved schedule for pure evaluation tests"""
    defaults = dict(
        id=1,
        company_id=1,
        equipment_id=1,
        name="PM",
        maintenance_type="preventive",
        frequency_value=None,
        frequency_unit=None,
        hours_interval=None,
        warning_days=None,
        warning_hours=None,
        is_active=True,
        is_regulatory_requirement=False,
        created_at=datetime(2025, 1, 1, 8, 0),
    )
    defaults.update(fields)
    return MaintenanceSchedule(**defaults)


# ============================================================================
# Calendar arithmetic
# ============================================================================

class TestAddInterval:
    def test_days_and_weeks(self):
        assert add_interval(date(2025, 3, 1), 10, "days") == date(2025, 3, 11)
        assert add_interval(date(2025, 3, 1), 2, "weeks") == date(2025, 3, 15)

    def test_month_end_is_clamped(self):
        assert add_interval(date(2025, 1, 31), 1, "months") == date(2025, 2, 28)
        assert add_interval(date(2024, 1, 31), 1, "months") == date(2024, 2, 29)

    def test_months_roll_over_year(self):
        assert add_interval(date(2025, 11, 15), 3, "months") == date(2026, 2, 15)

    def test_years_from_leap_day(self):
        assert add_interval(date(2024, 2, 29), 1, "years") == date(2025, 2, 28)


class TestValidateTriggers:
    def test_no_trigger_rejected(self):
        with pytest.raises(ValidationError):
            validate_schedule_triggers(None, None, None)

    def test_half_calendar_trigger_rejected(self):
        with pytest.raises(ValidationError):
            validate_schedule_triggers(30, None, None)
        with pytest.raises(ValidationError):
            validate_schedule_triggers(None, "days", None)

    def test_warning_days_must_be_shorter_than_interval(self):
        with pytest.raises(ValidationError):
            validate_schedule_triggers(7, "days", None, warning_days=7)
        validate_schedule_triggers(7, "days", None, warning_days=6)

    def test_warning_days_needs_calendar_trigger(self):
        with pytest.raises(ValidationError):
            validate_schedule_triggers(None, None, Decimal("250"), warning_days=3)

    def test_warning_hours_must_be_shorter_than_interval(self):
        with pytest.raises(ValidationError):
            validate_schedule_triggers(None, None, Decimal("250"), warning_hours=Decimal("250"))
        validate_schedule_triggers(None, None, Decimal("250"), warning_hours=Decimal("25"))

    def test_usage_only_is_valid(self):
        validate_schedule_triggers(None, None, Decimal("500"))


# ============================================================================
# Evaluation
# ============================================================================

class TestCalendarEvaluation:
    def test_warning_scenario(self):
        """90-day interval, 7-day warning, completed 84 days ago: warning, due in 6 days"""
        today = date.today()
        schedule = _schedule(
            frequency_value=90, frequency_unit="days", warning_days=7,
            last_completed_at=today - timedelta(days=84),
        )
        result = evaluate(schedule, today)
        assert result.status == ScheduleStatus.WARNING
        assert result.next_due_at == today + timedelta(days=6)
        assert result.days_until_due == 6

    @pytest.mark.parametrize("value,unit", [
        (1, "days"), (30, "days"), (90, "days"), (2, "weeks"),
        (1, "months"), (6, "months"), (1, "years"),
    ])
    @pytest.mark.parametrize("warning_days", [None, 0])
    def test_never_overdue_before_due_and_overdue_after(self, value, unit, warning_days):
        baseline = date(2025, 1, 31)
        schedule = _schedule(
            frequency_value=value, frequency_unit=unit,
            warning_days=warning_days, last_completed_at=baseline,
        )
        next_due = add_interval(baseline, value, unit)

        before = evaluate(schedule, next_due - timedelta(days=1))
        assert before.status in (ScheduleStatus.OK, ScheduleStatus.WARNING)
        assert evaluate(schedule, next_due).status != ScheduleStatus.OVERDUE
        assert evaluate(schedule, next_due + timedelta(days=1)).status == ScheduleStatus.OVERDUE

    def test_never_completed_counts_from_creation(self):
        schedule = _schedule(frequency_value=30, frequency_unit="days", created_at=datetime(2025, 1, 1, 9, 30))
        assert evaluate(schedule, date(2025, 1, 20)).next_due_at == date(2025, 1, 31)

    def test_ok_outside_warning_window(self):
        schedule = _schedule(
            frequency_value=90, frequency_unit="days", warning_days=7,
            last_completed_at=date(2025, 1, 1),
        )
        assert evaluate(schedule, date(2025, 2, 1)).status == ScheduleStatus.OK


class TestUsageEvaluation:
    def _usage(self, **fields):
        return _schedule(
            hours_interval=Decimal("250"), warning_hours=Decimal("25"),
            last_completed_hours=Decimal("1000"), last_completed_at=date(2025, 3, 1),
            **fields
        )

    def test_ok_warning_overdue(self):
        schedule = self._usage()
        as_of = date(2025, 3, 11)
        assert evaluate(schedule, as_of, Decimal("1100")).status == ScheduleStatus.OK
        assert evaluate(schedule, as_of, Decimal("1230")).status == ScheduleStatus.WARNING
        assert evaluate(schedule, as_of, Decimal("1251")).status == ScheduleStatus.OVERDUE

    def test_hours_remaining_and_projected_date(self):
        """100 hours used in 10 days projects the remaining 150 hours 15 days out"""
        result = evaluate(self._usage(), date(2025, 3, 11), Decimal("1100"))
        assert result.next_due_hours == Decimal("1250")
        assert result.hours_remaining == Decimal("150")
        assert result.next_due_at == date(2025, 3, 26)

    def test_missing_reading_is_not_an_error(self):
        result = evaluate(self._usage(), date(2025, 3, 11), None)
        assert result.status == ScheduleStatus.OK
        assert result.next_due_hours == Decimal("1250")
        assert result.hours_remaining is None
        assert result.next_due_at is None


class TestCombinedEvaluation:
    @pytest.mark.parametrize("days_since", [10, 80, 85, 95])
    @pytest.mark.parametrize("hours", ["1100", "1230", "1300"])
    def test_more_urgent_trigger_wins(self, days_since, hours):
        as_of = date(2025, 6, 1)
        completed = as_of - timedelta(days=days_since)
        calendar_fields = dict(frequency_value=90, frequency_unit="days", warning_days=7)
        usage_fields = dict(hours_interval=Decimal("250"), warning_hours=Decimal("25"), last_completed_hours=Decimal("1000"))

        both = _schedule(last_completed_at=completed, **calendar_fields, **usage_fields)
        calendar_only = _schedule(last_completed_at=completed, **calendar_fields)
        usage_only = _schedule(last_completed_at=completed, **usage_fields)

        reading = Decimal(hours)
        combined = evaluate(both, as_of, reading).status
        single = [evaluate(calendar_only, as_of, reading).status, evaluate(usage_only, as_of, reading).status]
        assert URGENCY[combined] == max(URGENCY[s] for s in single)

    def test_next_due_is_earlier_projection(self):
        as_of = date(2025, 6, 1)
        schedule = _schedule(
            frequency_value=90, frequency_unit="days",
            hours_interval=Decimal("250"), last_completed_hours=Decimal("0"),
            last_completed_at=as_of - timedelta(days=10),
        )
        # 200 hours in 10 days -> 50 hours left -> 3 days
        result = evaluate(schedule, as_of, Decimal("200"))
        assert result.next_due_at == as_of + timedelta(days=3)


# ============================================================================
# Overdue requests
# ============================================================================

class TestWorkOrderRequest:
    def _overdue(self, **fields):
        schedule = _schedule(
            frequency_value=30, frequency_unit="days", last_completed_at=date(2025, 1, 1), **fields
        )
        return schedule, evaluate(schedule, date(2025, 3, 1))

    def test_request_for_newly_overdue(self):
        schedule, evaluation = self._overdue()
        request = work_order_request_for(schedule, evaluation)
        assert request is not None
        assert request.schedule_id == schedule.id
        assert request.maintenance_type.value == "preventive"
        assert request.priority == WorkOrderPriority.MEDIUM
        assert request.due_date == date(2025, 1, 31)

    def test_regulatory_schedule_requests_high_priority(self):
        schedule, evaluation = self._overdue(is_regulatory_requirement=True, regulation_reference="29 CFR 1910.179")
        request = work_order_request_for(schedule, evaluation)
        assert request.priority == WorkOrderPriority.HIGH
        assert "1910.179" in request.description

    def test_no_request_once_flagged(self):
        schedule, evaluation = self._overdue(overdue_flagged_at=datetime(2025, 2, 1))
        assert work_order_request_for(schedule, evaluation) is None

    def test_no_request_when_inactive_or_not_overdue(self):
        schedule, evaluation = self._overdue(is_active=False)
        assert work_order_request_for(schedule, evaluation) is None

        schedule = _schedule(frequency_value=30, frequency_unit="days", last_completed_at=date(2025, 1, 1))
        assert work_order_request_for(schedule, evaluate(schedule, date(2025, 1, 15))) is None

    @pytest.mark.parametrize("unit,expected", [
        ("days", "inspection_daily"),
        ("weeks", "inspection_weekly"),
        ("months", "inspection_monthly"),
        ("years", "inspection_annual"),
    ])
    def test_inspection_type_follows_frequency(self, unit, expected):
        schedule = _schedule(maintenance_type="inspection", frequency_value=1, frequency_unit=unit)
        assert schedule_engine.work_order_type_for(schedule) == expected


class TestCompleteSchedule:
    def test_advances_and_clears_flag(self):
        schedule = _schedule(
            frequency_value=30, frequency_unit="days",
            last_completed_at=date(2025, 1, 1), overdue_flagged_at=datetime(2025, 2, 5),
        )
        complete_schedule(schedule, date(2025, 2, 10))
        assert schedule.last_completed_at == date(2025, 2, 10)
        assert schedule.overdue_flagged_at is None

    def test_backdated_completion_keeps_baseline(self):
        schedule = _schedule(
            hours_interval=Decimal("250"), last_completed_at=date(2025, 3, 1),
            last_completed_hours=Decimal("1200"),
        )
        complete_schedule(schedule, date(2025, 2, 1), Decimal("1100"))
        assert schedule.last_completed_at == date(2025, 3, 1)
        assert schedule.last_completed_hours == Decimal("1200")


# ============================================================================
# Store operations
# ============================================================================

class TestCreateSchedule:
    def test_create_applies_default_warning(self, db, manager):
        unit = create_test_equipment(db)
        schedule = schedule_engine.create_schedule(db, manager.company_id, ScheduleCreate(
            equipment_id=unit.id, name="Quarterly PM", maintenance_type=ScheduleType.PREVENTIVE,
            frequency_value=90, frequency_unit=FrequencyUnit.DAYS,
        ), manager)
        assert schedule.id is not None
        assert schedule.warning_days == 7
        assert schedule.created_by == manager.user_id

    def test_default_warning_skipped_for_short_interval(self, db, manager):
        unit = create_test_equipment(db)
        schedule = schedule_engine.create_schedule(db, manager.company_id, ScheduleCreate(
            equipment_id=unit.id, name="Daily check", maintenance_type=ScheduleType.INSPECTION,
            frequency_value=1, frequency_unit=FrequencyUnit.DAYS,
        ), manager)
        assert schedule.warning_days is None

    def test_usage_schedule_seeds_hours_from_meter(self, db, manager):
        unit = create_test_equipment(db, current_usage_hours=Decimal("1520.5"))
        schedule = schedule_engine.create_schedule(db, manager.company_id, ScheduleCreate(
            equipment_id=unit.id, name="250h service", maintenance_type=ScheduleType.PREVENTIVE,
            hours_interval=Decimal("250"),
        ), manager)
        assert schedule.last_completed_hours == Decimal("1520.5")

    def test_no_trigger_rejected(self, db, manager):
        unit = create_test_equipment(db)
        with pytest.raises(ValidationError):
            schedule_engine.create_schedule(db, manager.company_id, ScheduleCreate(
                equipment_id=unit.id, name="Nothing", maintenance_type=ScheduleType.OTHER,
            ), manager)
        assert db.query(MaintenanceSchedule).count() == 0

    def test_retired_equipment_rejected(self, db, manager):
        unit = create_test_equipment(db, status="retired")
        with pytest.raises(ValidationError):
            schedule_engine.create_schedule(db, manager.company_id, ScheduleCreate(
                equipment_id=unit.id, name="PM", maintenance_type=ScheduleType.PREVENTIVE,
                frequency_value=30, frequency_unit=FrequencyUnit.DAYS,
            ), manager)

    def test_other_tenant_equipment_not_found(self, db, outsider):
        unit = create_test_equipment(db)
        with pytest.raises(NotFoundError):
            schedule_engine.create_schedule(db, outsider.company_id, ScheduleCreate(
                equipment_id=unit.id, name="PM", maintenance_type=ScheduleType.PREVENTIVE,
                frequency_value=30, frequency_unit=FrequencyUnit.DAYS,
            ), outsider)


class TestUpdateSchedule:
    def test_update_revalidates_merged_triggers(self, db, manager):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit, frequency_value=30, warning_days=7)
        with pytest.raises(ValidationError):
            schedule_engine.update_schedule(
                db, manager.company_id, schedule.id, ScheduleUpdate(frequency_value=5), manager
            )

        updated = schedule_engine.update_schedule(
            db, manager.company_id, schedule.id, ScheduleUpdate(frequency_value=60, assigned_to="tech-9"), manager
        )
        assert updated.frequency_value == 60
        assert updated.assigned_to == "tech-9"

    def test_added_usage_trigger_counts_from_current_meter(self, db, manager):
        unit = create_test_equipment(db, current_usage_hours=Decimal("4000"))
        schedule = create_test_schedule(db, unit)
        assert schedule.last_completed_hours is None

        updated = schedule_engine.update_schedule(
            db, manager.company_id, schedule.id, ScheduleUpdate(hours_interval=Decimal("500")), manager
        )
        assert updated.last_completed_hours == Decimal("4000")

        result = evaluate(updated, date.today(), unit.current_usage_hours)
        assert result.status != ScheduleStatus.OVERDUE
        assert result.next_due_hours == Decimal("4500")

    def test_added_usage_trigger_without_reading_starts_at_zero(self, db, manager):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit)
        updated = schedule_engine.update_schedule(
            db, manager.company_id, schedule.id, ScheduleUpdate(hours_interval=Decimal("250")), manager
        )
        assert updated.last_completed_hours == Decimal("0")

    def test_changed_usage_interval_keeps_baseline(self, db, manager):
        unit = create_test_equipment(db, current_usage_hours=Decimal("900"))
        schedule = create_test_schedule(
            db, unit, frequency_value=None, frequency_unit=None, warning_days=None,
            hours_interval=Decimal("250"), last_completed_hours=Decimal("600"),
        )
        updated = schedule_engine.update_schedule(
            db, manager.company_id, schedule.id, ScheduleUpdate(hours_interval=Decimal("500")), manager
        )
        assert updated.last_completed_hours == Decimal("600")

    @pytest.mark.parametrize("field", ["name", "is_active", "is_regulatory_requirement"])
    def test_null_for_required_column_rejected(self, db, manager, field):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit, name="Quarterly PM")
        with pytest.raises(ValidationError) as exc:
            schedule_engine.update_schedule(
                db, manager.company_id, schedule.id, ScheduleUpdate(**{field: None}), manager
            )
        assert exc.value.details["field"] == field
        db.refresh(schedule)
        assert schedule.name == "Quarterly PM"
        assert schedule.is_active is True

    def test_blank_name_rejected(self, db, manager):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit)
        with pytest.raises(ValidationError):
            schedule_engine.update_schedule(
                db, manager.company_id, schedule.id, ScheduleUpdate(name="   "), manager
            )

    def test_deactivate(self, db, manager):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit)
        assert schedule_engine.deactivate_schedule(db, manager.company_id, schedule.id, manager).is_active is False


class TestListSchedules:
    def test_most_urgent_first_and_overdue_filter(self, db, manager):
        unit = create_test_equipment(db)
        ok = create_test_schedule(db, unit, last_completed_at=days_ago(10))
        overdue = create_test_schedule(db, unit, last_completed_at=days_ago(120))
        warning = create_test_schedule(db, unit, last_completed_at=days_ago(85))

        page, total = schedule_engine.list_schedules(db, manager.company_id)
        assert total == 3
        assert [s.id for s, _ in page] == [overdue.id, warning.id, ok.id]

        page, total = schedule_engine.list_schedules(
            db, manager.company_id, ScheduleFilters(overdue_only=True)
        )
        assert total == 1
        assert page[0][1].status == ScheduleStatus.OVERDUE

    def test_tenant_scoping(self, db, manager, outsider):
        mine = create_test_equipment(db)
        theirs = create_test_equipment(db, company_id=outsider.company_id)
        create_test_schedule(db, mine)
        foreign = create_test_schedule(db, theirs)

        _, total = schedule_engine.list_schedules(db, manager.company_id)
        assert total == 1
        with pytest.raises(NotFoundError):
            schedule_engine.get_schedule(db, manager.company_id, foreign.id)

    def test_unknown_filter_key_rejected(self):
        with pytest.raises(SchemaValidationError):
            ScheduleFilters(colour="red")


class TestOverdueSweep:
    def test_report_only_by_default(self, db, manager):
        unit = create_test_equipment(db)
        create_test_schedule(db, unit, last_completed_at=days_ago(200))
        create_test_schedule(db, unit, last_completed_at=days_ago(5))

        result = schedule_engine.sweep_overdue_schedules(db, manager.company_id, manager, auto_create=False)
        assert result.evaluated == 2
        assert result.overdue == 1
        assert len(result.requests) == 1
        assert result.created_work_order_ids == []
        assert db.query(WorkOrder).count() == 0

    def test_retired_equipment_skipped(self, db, manager):
        unit = create_test_equipment(db)
        create_test_schedule(db, unit, last_completed_at=days_ago(200))
        unit.status = "retired"
        db.commit()

        result = schedule_engine.sweep_overdue_schedules(db, manager.company_id, manager, auto_create=True)
        assert result.evaluated == 0
        assert result.requests == []
        assert db.query(WorkOrder).count() == 0

    def test_auto_create_once_per_overdue_episode(self, db, manager):
        unit = create_test_equipment(db)
        schedule = create_test_schedule(db, unit, last_completed_at=days_ago(200), is_regulatory_requirement=True)

        first = schedule_engine.sweep_overdue_schedules(db, manager.company_id, manager, auto_create=True)
        assert len(first.created_work_order_ids) == 1
        order = db.query(WorkOrder).one()
        assert order.schedule_id == schedule.id
        assert order.priority == "high"
        assert order.status == "requested"

        second = schedule_engine.sweep_overdue_schedules(db, manager.company_id, manager, auto_create=True)
        assert second.overdue == 1
        assert second.requests == []
        assert db.query(WorkOrder).count() == 1
