from .mission_order import MissionOrder, MissionOrderStatus

__all__ = ["MissionOrder", "MissionOrderStatus"]
