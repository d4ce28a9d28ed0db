"""Services built on top of the protocol client."""
from .liquidation import LiquidationStep, plan_liquidations
from .priority_queue import build_priority_queue, split_queue

__all__ = ["LiquidationStep", "build_priority_queue", "plan_liquidations", "split_queue"]
