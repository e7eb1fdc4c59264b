from .mission_order_schemas import MissionOrderResponse, MissionOrderSignRequest

__all__ = ["MissionOrderResponse", "MissionOrderSignRequest"]
