from .driver import BotStep, EngineDriver, FlushPrices, PlacePosition, Tick
from .supervisor import LoopSupervisor, RuntimeHealth

__all__ = ["BotStep", "EngineDriver", "FlushPrices", "LoopSupervisor", "PlacePosition", "RuntimeHealth", "Tick"]
