from .agent import Agent
from .reporter import Reporter
from .scheduler import PeriodicTask

__all__ = ["Agent", "PeriodicTask", "Reporter"]
