from collections import defaultdict

import pytest

from dayplan_travel.api.core.reconciler import ReconciliationController
from dayplan_travel.api.core.validation import WarningKind
from dayplan_travel.api.models import Coordinates, Destination, Trip


def ids(controller):
    return [day.destination_id for day in controller.trip.days]


def record(controller):
    events = defaultdict(list)
    for name in ("day_assignments_changed", "destinations_changed", "selection_changed", "validation_warning"):
        controller.add_listener(name, events[name].append)
    return events


class TestLoad:
    def test_initial_pass_selects_first_day(self, make_controller):
        controller = make_controller([("a", 2), ("b", 3)], 6)

        assert ids(controller) == ["a", "a", "b", "b", "b", "b"]
        assert controller.allocation_passes == 1
        assert controller.selection.selected_day_id == "d0"
        assert controller.selection.selected_destination_id == "a"

    def test_derived_dates_are_filled_in(self, make_controller):
        controller = make_controller([("a", 2), ("b", 3)], 6)

        a = controller.trip.get_destination("a")
        b = controller.trip.get_destination("b")
        assert (a.start_date, a.end_date) == ("2025-06-01", "2025-06-03")
        assert (b.start_date, b.end_date) == ("2025-06-03", "2025-06-06")

    def test_unknown_event_name(self, make_controller):
        controller = make_controller([("a", 1)], 2)

        with pytest.raises(ValueError):
            controller.add_listener("day_changed", print)

    def test_reload_publishes_one_selection(self, make_controller, make_trip):
        controller = make_controller([("a", 1), ("b", 1)], 3)
        controller.select_day("d2")
        events = record(controller)

        controller.load_trip(make_trip([("c", 2)], 3))

        published, = events["selection_changed"]
        assert published.selected_day_id == "d0"
        assert published.selected_destination_id == "c"
        assert published is controller.selection

    def test_reload_of_empty_trip_still_announces_selection(self, make_controller, make_trip):
        controller = make_controller([("a", 1)], 3)
        events = record(controller)

        controller.load_trip(make_trip([], 0))

        published, = events["selection_changed"]
        assert published.selected_day_id is None
        assert published.selected_destination_id is None

    def test_persisted_trip_round_trips(self, make_controller):
        controller = make_controller([("a", 0, 2), ("b", 1, 0), ("c", 2, 4)], 7)
        data = controller.trip.to_dict()
        for destination in data["destinations"]:
            destination["startDate"] = destination["endDate"] = None
        for day in data["days"]:
            day["destinationId"] = None

        restored = ReconciliationController(Trip.from_dict(data), debounce_ms=0, auto_fill_single=False)

        assert ids(restored) == ids(controller)
        assert [d.to_dict() for d in restored.trip.destinations] == [
            d.to_dict() for d in controller.trip.destinations
        ]


class TestNightChanges:
    def test_increase_without_remaining_nights_is_rejected(self, make_controller):
        controller = make_controller([("a", 2), ("b", 3)], 6)
        events = record(controller)

        result = controller.on_night_count_change("a", 1)

        assert result.rejected
        assert result.has_warning(WarningKind.INVALID_NIGHT_DELTA)
        assert controller.trip.get_destination("a").nights == 2
        assert controller.allocation_passes == 1
        assert [w.kind for w in events["validation_warning"]] == [WarningKind.INVALID_NIGHT_DELTA]
        assert events["day_assignments_changed"] == []

    def test_decrease_below_zero_is_rejected(self, make_controller):
        controller = make_controller([("a", 1), ("b", 0)], 4)

        result = controller.on_night_count_change("b", -1)

        assert result.has_warning(WarningKind.INVALID_NIGHT_DELTA)
        assert controller.trip.get_destination("b").nights == 0

    def test_increase_larger_than_remaining_is_rejected(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)

        assert controller.on_night_count_change("a", 4).rejected
        assert controller.on_night_count_change("a", 3).committed
        assert ids(controller) == ["a", "a", "a", "a", "b", "b"]

    def test_unknown_destination(self, make_controller):
        controller = make_controller([("a", 1)], 3)

        assert controller.on_night_count_change("zzz", 1).has_warning(WarningKind.UNKNOWN_DESTINATION)

    def test_zero_delta_is_a_no_op(self, make_controller):
        controller = make_controller([("a", 1)], 3)

        result = controller.on_night_count_change("a", 0)

        assert not result.committed
        assert result.warnings == []
        assert controller.allocation_passes == 1

    def test_change_runs_one_pass_and_notifies_once(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)
        controller.select_day("d1")
        assert controller.selection.selected_destination_id == "b"
        events = record(controller)

        result = controller.on_night_count_change("a", 2)

        assert result.committed and result.days_changed
        assert controller.allocation_passes == 2
        assert ids(controller) == ["a", "a", "a", "b", "b", None]
        assert len(events["day_assignments_changed"]) == 1
        assert len(events["destinations_changed"]) == 1
        assert len(events["selection_changed"]) == 1
        assert controller.selection.selected_day_id == "d1"
        assert controller.selection.selected_destination_id == "a"

    def test_set_nights_uses_absolute_value(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)

        assert controller.set_nights("b", 3).committed
        assert controller.trip.get_destination("b").nights == 3
        assert controller.set_nights("b", -1).has_warning(WarningKind.INVALID_NIGHT_DELTA)
        assert controller.set_nights("nope", 1).has_warning(WarningKind.UNKNOWN_DESTINATION)


class TestDuplicateLockout:
    def test_same_action_inside_window_is_dropped(self, make_controller, clock):
        controller = make_controller([("a", 1), ("b", 1)], 6)

        assert controller.on_night_count_change("a", 1).committed
        second = controller.on_night_count_change("a", 1)
        clock.advance(0.2)
        third = controller.on_night_count_change("a", 1)

        assert second.has_warning(WarningKind.DUPLICATE_ACTION)
        assert third.committed
        assert controller.trip.get_destination("a").nights == 3
        assert controller.allocation_passes == 3

    def test_different_action_inside_window_is_accepted(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)

        assert controller.on_night_count_change("a", 1).committed
        assert controller.on_night_count_change("b", 1).committed

    def test_zero_lockout_disables_check(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6, debounce_ms=0)

        assert controller.on_night_count_change("a", 1).committed
        assert controller.on_night_count_change("a", 1).committed


class TestReorder:
    def test_reorder_moves_selection_with_the_day(self, make_controller):
        controller = make_controller([("a", 1), ("b", 2), ("c", 2)], 6)
        controller.select_day("d2")
        assert controller.selection.selected_destination_id == "b"
        version = controller.selection.version

        result = controller.on_reorder(["a", "c", "b"])

        assert result.days_changed
        assert ids(controller) == ["a", "c", "c", "b", "b", "b"]
        assert controller.selection.selected_day_id == "d2"
        assert controller.selection.selected_destination_id == "c"
        assert controller.selection.version == version + 1
        assert [d.order for d in sorted(controller.trip.destinations, key=lambda d: d.order)] == [0, 1, 2]

    def test_reorder_that_keeps_assignments_is_silent_for_days(self, make_controller):
        controller = make_controller([("a", 0, 2), ("b", 1, 0), ("c", 2, 4)], 7)
        events = record(controller)

        result = controller.on_reorder([controller.trip.get_destination(i) for i in ("a", "c", "b")])

        assert result.committed
        assert not result.days_changed
        assert events["day_assignments_changed"] == []
        assert len(events["destinations_changed"]) == 1
        assert controller.allocation_passes == 2

    @pytest.mark.parametrize("ordered", [["a"], ["a", "x"], ["a", "a"], ["a", "b", "b"]])
    def test_reorder_must_be_a_permutation(self, make_controller, ordered):
        controller = make_controller([("a", 1), ("b", 1)], 3)

        result = controller.on_reorder(ordered)

        assert result.has_warning(WarningKind.INVALID_REORDER)
        assert controller.allocation_passes == 1


class TestAddRemove:
    def test_added_destination_goes_last(self, make_controller):
        controller = make_controller([("a", 0, 1), ("b", 5, 1)], 6)

        result = controller.on_add_destination(Destination(id="c", name="C", nights=1, order=0))

        assert result.committed
        assert result.destination_id == "c"
        assert controller.trip.get_destination("c").order == 6
        assert ids(controller) == ["a", "b", "c", "c", None, None]

    def test_first_destination_gets_order_zero(self, make_controller):
        controller = make_controller([], 4)

        result = controller.on_add_destination({"name": "Siena", "nights": 2, "order": 7})

        added = controller.trip.get_destination(result.destination_id)
        assert added.name == "Siena"
        assert added.order == 0
        assert ids(controller) == [added.id] * 3 + [None]

    def test_duplicate_and_invalid_destinations_are_rejected(self, make_controller):
        controller = make_controller([("a", 1)], 4)

        assert controller.on_add_destination(Destination(id="a", name="Again")).has_warning(
            WarningKind.DUPLICATE_DESTINATION
        )
        assert controller.on_add_destination({"name": "Bad", "nights": -2}).has_warning(
            WarningKind.INVALID_DESTINATION
        )
        assert controller.on_add_destination({"name": "Bad", "nights": "many"}).has_warning(
            WarningKind.INVALID_DESTINATION
        )
        assert len(controller.trip.destinations) == 1

    def test_adding_too_many_nights_warns_but_commits(self, make_controller):
        controller = make_controller([("a", 2)], 3)

        result = controller.on_add_destination(Destination(id="b", nights=2))

        assert result.committed
        assert result.has_warning(WarningKind.OVER_ALLOCATION)
        assert ids(controller) == ["a", "a", "b"]

    def test_removing_selected_destination_redirects_selection(self, make_controller):
        controller = make_controller([("a", 2), ("b", 3)], 6)
        controller.select_day("d4")
        events = record(controller)

        result = controller.on_remove_destination("b")

        assert result.has_warning(WarningKind.DANGLING_SELECTION)
        assert ids(controller) == ["a", "a", "a", None, None, None]
        assert controller.selection.selected_day_id == "d4"
        assert controller.selection.selected_destination_id == "a"
        assert len(events["selection_changed"]) == 1
        assert WarningKind.DANGLING_SELECTION in [w.kind for w in events["validation_warning"]]

    def test_remove_unknown(self, make_controller):
        controller = make_controller([("a", 2)], 3)

        assert controller.on_remove_destination("b").has_warning(WarningKind.UNKNOWN_DESTINATION)


class TestReentrancy:
    def test_listener_cannot_mutate_during_commit(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)
        inner = []
        controller.add_listener(
            "day_assignments_changed",
            lambda days: inner.append(controller.on_night_count_change("b", 1)),
        )

        result = controller.on_night_count_change("a", 1)

        assert result.committed
        assert inner[0].has_warning(WarningKind.REENTRANT_MUTATION)
        assert controller.trip.get_destination("b").nights == 1
        assert controller.allocation_passes == 2
        assert controller.on_night_count_change("b", 1).committed

    def test_failing_listener_does_not_abort_commit(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 6)

        def broken(days):
            raise RuntimeError("render failed")

        controller.add_listener("day_assignments_changed", broken)

        assert controller.on_night_count_change("a", 1).committed
        assert controller.on_night_count_change("b", 1).committed


class TestSelection:
    def test_selecting_destination_keeps_day(self, make_controller):
        controller = make_controller([("a", 2), ("b", 3)], 6)

        controller.select_destination("b")

        assert controller.selection.selected_day_id == "d0"
        assert controller.selection.selected_destination_id == "b"
        assert controller.select_destination("zzz").has_warning(WarningKind.UNKNOWN_DESTINATION)

    def test_selecting_orphan_day_keeps_destination(self, make_controller):
        controller = make_controller([("a", 1)], 4)

        controller.select_day("d3")

        assert controller.selection.selected_day_id == "d3"
        assert controller.selection.selected_destination_id == "a"
        assert controller.select_day("missing").has_warning(WarningKind.UNKNOWN_DAY)

    def test_adjacent_navigation_wraps(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 3)

        controller.select_adjacent_day(-1)
        assert controller.selection.selected_day_id == "d2"
        assert controller.selection.selected_destination_id == "b"

        controller.select_adjacent_day(1)
        assert controller.selection.selected_day_id == "d0"

        controller.select_adjacent_destination(1)
        assert controller.selection.selected_destination_id == "b"
        controller.select_adjacent_destination(1)
        assert controller.selection.selected_destination_id == "a"
        assert controller.selection.selected_day_id == "d0"

    def test_view_flags(self, make_controller):
        controller = make_controller([("a", 1)], 2)

        assert controller.set_expanded_view(True).committed
        assert not controller.set_expanded_view(True).committed
        assert controller.set_mini_map_visible(False).committed
        assert controller.selection.is_expanded_view is True
        assert controller.selection.is_mini_map_visible is False


class TestAutoFill:
    def test_single_destination_takes_every_night(self, make_controller):
        controller = make_controller([], 5, auto_fill_single=True)

        result = controller.on_add_destination({"id": "x", "name": "X", "nights": 0})

        assert result.committed
        assert controller.trip.get_destination("x").nights == 4
        assert ids(controller) == ["x"] * 5
        assert controller.on_night_count_change("x", -1).has_warning(WarningKind.INVALID_NIGHT_DELTA)

    def test_auto_fill_on_load(self, make_controller):
        controller = make_controller([("solo", 1)], 4, auto_fill_single=True)

        assert controller.trip.get_destination("solo").nights == 3
        assert ids(controller) == ["solo"] * 4

    def test_auto_fill_stops_once_a_second_destination_exists(self, make_controller):
        controller = make_controller([("x", 1)], 5, auto_fill_single=True)

        controller.on_add_destination({"id": "y", "name": "Y", "nights": 0})
        result = controller.on_night_count_change("x", -2)

        assert result.committed
        assert controller.trip.get_destination("x").nights == 2


class TestDateRange:
    def test_shift_keeps_overlapping_days(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 3)

        result = controller.on_date_range_change("2025-06-02", "2025-06-05")

        days = controller.trip.days
        assert [d.date for d in days] == ["2025-06-02", "2025-06-03", "2025-06-04", "2025-06-05"]
        assert [d.id for d in days[:2]] == ["d1", "d2"]
        assert ids(controller) == ["a", "b", "b", None]
        assert controller.trip.start_date == "2025-06-02"
        assert controller.trip.end_date == "2025-06-05"
        assert result.has_warning(WarningKind.DANGLING_SELECTION)
        assert controller.selection.selected_day_id == "d1"
        assert controller.selection.selected_destination_id == "a"

    def test_shrinking_range_truncates_allocation(self, make_controller):
        controller = make_controller([("a", 2), ("b", 2)], 5)

        result = controller.on_date_range_change("2025-06-01", "2025-06-03")

        assert ids(controller) == ["a", "a", "b"]
        assert result.has_warning(WarningKind.OVER_ALLOCATION)

    def test_single_destination_grows_with_the_range(self, make_controller):
        controller = make_controller([("solo", 4)], 5, auto_fill_single=True)

        result = controller.on_date_range_change("2025-06-01", "2025-06-08")

        assert controller.trip.get_destination("solo").nights == 7
        assert ids(controller) == ["solo"] * 8
        assert result.warnings == []
        assert controller.summary()["remaining_nights"] == 0

    def test_single_destination_shrinks_with_the_range(self, make_controller):
        controller = make_controller([("solo", 7)], 8, auto_fill_single=True)

        result = controller.on_date_range_change("2025-06-01", "2025-06-05")

        assert controller.trip.get_destination("solo").nights == 4
        assert ids(controller) == ["solo"] * 5
        assert not result.has_warning(WarningKind.OVER_ALLOCATION)
        assert controller.trip.get_destination("solo").end_date == "2025-06-05"

    @pytest.mark.parametrize("start,end", [("2025-06-05", "2025-06-01"), ("soon", "2025-06-03"), (None, None)])
    def test_invalid_range(self, make_controller, start, end):
        controller = make_controller([("a", 1)], 3)

        result = controller.on_date_range_change(start, end)

        assert result.has_warning(WarningKind.INVALID_DATE_RANGE)
        assert len(controller.trip.days) == 3


class TestReadSide:
    def test_set_coordinates_does_not_reallocate(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 3)
        events = record(controller)

        result = controller.set_coordinates("a", Coordinates(41.9, 12.5))

        assert result.committed
        assert controller.allocation_passes == 1
        assert len(events["destinations_changed"]) == 1
        assert events["day_assignments_changed"] == []
        assert not controller.set_coordinates("a", Coordinates(41.9, 12.5)).committed

    def test_snapshot(self, make_controller):
        controller = make_controller([("a", 1), ("b", 1)], 3)

        snapshot = controller.snapshot()

        assert snapshot["trip"]["id"] == "trip-1"
        assert snapshot["summary"]["remaining_nights"] == 0
        assert [t["dayIndex"] for t in snapshot["transfers"]] == [1]
        assert snapshot["selection"]["selectedDayId"] == "d0"
