from ridematch.models.driver import Driver
from ridematch.models.junction import Junction, RoutePrice
from ridematch.models.ride import Ride, RidePassenger
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule

__all__ = ["Driver", "Junction", "RoutePrice", "Ride", "RidePassenger", "RideRequest", "DriverSchedule"]
