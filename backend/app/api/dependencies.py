from app.realtime.coordinator import RoomCoordinator


def get_coordinator() -> RoomCoordinator:
    from app.realtime.events import coordinator

    return coordinator


__all__ = ["get_coordinator"]
