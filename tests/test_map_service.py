import threading

from dayplan_travel.api.core.selection import SelectionState
from dayplan_travel.api.core.transfer import get_transfer
from dayplan_travel.api.models import Coordinates, Destination
from dayplan_travel.api.services import map_service
from dayplan_travel.api.services.map_service import MapService

ROME = Coordinates(41.9028, 12.4964)
FLORENCE = Coordinates(43.7696, 11.2558)


def test_validate_coordinates():
    assert MapService.validate_coordinates(41.9, 12.5)
    assert not MapService.validate_coordinates(91, 0)
    assert not MapService.validate_coordinates(0, -181)


def test_distance_between_rome_and_florence():
    assert 225 < MapService.distance_km(ROME, FLORENCE) < 235
    assert MapService.distance_km(ROME, ROME) == 0


def test_distances_follow_visit_order():
    destinations = [
        Destination(id="florence", order=1, nights=1, coordinates=FLORENCE),
        Destination(id="rome", order=0, nights=1, coordinates=ROME),
        Destination(id="unknown", order=2, nights=1),
    ]

    distances = MapService.distances_from_previous(destinations)

    assert distances["rome"] is None
    assert 225 < distances["florence"] < 235
    assert distances["unknown"] is None


def test_bounds():
    destinations = [
        Destination(id="rome", coordinates=ROME),
        Destination(id="florence", coordinates=FLORENCE),
        Destination(id="unknown"),
    ]

    assert MapService.calculate_bounds(destinations) == {
        "north": FLORENCE.lat,
        "south": ROME.lat,
        "east": ROME.lng,
        "west": FLORENCE.lng,
    }
    assert MapService.calculate_bounds([Destination(id="x")]) == {}


def test_focus_follows_selected_destination(make_trip):
    trip = make_trip([("rome", 1), ("florence", 1), ("siena", 1)], 4)
    trip.destinations[0].coordinates = ROME
    trip.destinations[1].coordinates = FLORENCE

    focus = MapService.focus_for_selection(trip, SelectionState(selected_destination_id="rome"))
    assert focus["mode"] == "destination"
    assert focus["center"] == ROME.to_dict()

    fallback = MapService.focus_for_selection(trip, SelectionState(selected_destination_id="siena"))
    assert fallback["mode"] == "bounds"
    assert fallback["bounds"]["north"] == FLORENCE.lat

    trip.destinations[0].coordinates = None
    trip.destinations[1].coordinates = None
    assert MapService.focus_for_selection(trip, SelectionState())["mode"] == "none"


def test_describe_transfer(make_controller):
    controller = make_controller([("rome", 1), ("florence", 1)], 3)
    controller.set_coordinates("rome", ROME)
    controller.set_coordinates("florence", FLORENCE)
    transfer = get_transfer(1, controller.trip.days, controller.trip.destinations)

    info = MapService.describe_transfer(transfer)

    assert info["fromDestinationId"] == "rome"
    assert 225 < info["distanceKm"] < 235
    assert info["estimatedMinutes"] == MapService.estimate_travel_time(
        MapService.distance_km(ROME, FLORENCE) * 1000
    )


def test_describe_transfer_without_coordinates(make_controller):
    controller = make_controller([("rome", 1), ("florence", 1)], 3)
    transfer = get_transfer(1, controller.trip.days, controller.trip.destinations)

    assert "distanceKm" not in MapService.describe_transfer(transfer)


def test_estimate_travel_time():
    assert MapService.estimate_travel_time(133300) == 100
    assert MapService.estimate_travel_time(120000, "flying") == 10
    assert MapService.estimate_travel_time(10) == 1


def test_locate_destinations_writes_back_through_controller(make_controller, monkeypatch):
    controller = make_controller([("rome", 1), ("florence", 1)], 3)
    monkeypatch.setattr(
        map_service,
        "geocode_destinations",
        lambda destinations: {"rome": ROME, "gone": FLORENCE, "florence": Coordinates(120, 0)},
    )

    located = MapService.locate_destinations(controller, threading.RLock())

    assert located == ["rome"]
    assert controller.trip.get_destination("rome").coordinates == ROME
    assert controller.trip.get_destination("florence").coordinates is None
    assert controller.allocation_passes == 1


def test_locate_destinations_with_nothing_found(make_controller, monkeypatch):
    controller = make_controller([("rome", 1)], 2)
    monkeypatch.setattr(map_service, "geocode_destinations", lambda destinations: {})

    assert MapService.locate_destinations(controller) == []
