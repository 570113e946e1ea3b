"""agentqa execution utilities - multi-run executor and cost registry."""

from agentqa.execution.cost import CostRegistry, ModelPricing, default_cost_registry
from agentqa.execution.multi_run import MultiRunExecutor, RunScenarioOptions, execute_multi_run

__all__ = [
    "CostRegistry",
    "ModelPricing",
    "MultiRunExecutor",
    "RunScenarioOptions",
    "default_cost_registry",
    "execute_multi_run",
]
