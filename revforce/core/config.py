"""
Configuration Management for Revforce

Centralized configuration with environment variable support.
"""

import os
from typing import List
from pydantic import BaseModel, Field


class AgentDefaults(BaseModel):
    """Defaults applied to agents spawned by the registry."""
    priority: int = 1
    max_concurrent_tasks: int = Field(5, ge=1)
    performance_threshold: float = 0.7
    risk_tolerance: float = 0.3


class StrategyConfig(BaseModel):
    """Retention limits and retry budget for strategy-owned state."""
    history_limit: int = Field(100, ge=1)
    market_cache_size: int = Field(50, ge=1)
    benchmark_retries: int = Field(3, ge=1)


class WorkforceConfig(BaseModel):
    """Dispatcher and registry configuration."""
    max_agents: int = 20
    agent_types: List[str] = ["revenue", "market"]
    task_queue_size: int = 1000
    performance_threshold: float = 0.7
    load_balancing_strategy: str = "performance-based"  # "round-robin" | "performance-based" | "task-affinity"
    auto_scaling: bool = True
    min_agents: int = Field(5, ge=0)
    result_history_limit: int = Field(1000, ge=1)
    agent_defaults: AgentDefaults = AgentDefaults()
    strategy: StrategyConfig = StrategyConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    structured: bool = True


class RevforceConfig(BaseModel):
    """Master configuration for Revforce."""
    workforce: WorkforceConfig = WorkforceConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def from_env(cls) -> "RevforceConfig":
        """Load configuration from environment variables."""
        agent_types = os.getenv("REVFORCE_AGENT_TYPES", "revenue,market")
        return cls(
            workforce=WorkforceConfig(
                max_agents=int(os.getenv("REVFORCE_MAX_AGENTS", 20)),
                agent_types=[t.strip() for t in agent_types.split(",") if t.strip()],
                task_queue_size=int(os.getenv("REVFORCE_TASK_QUEUE_SIZE", 1000)),
                performance_threshold=float(os.getenv("REVFORCE_PERFORMANCE_THRESHOLD", 0.7)),
                load_balancing_strategy=os.getenv("REVFORCE_LOAD_BALANCING", "performance-based"),
                auto_scaling=os.getenv("REVFORCE_AUTO_SCALING", "true").lower() == "true",
                min_agents=int(os.getenv("REVFORCE_MIN_AGENTS", 5)),
                result_history_limit=int(os.getenv("REVFORCE_RESULT_HISTORY_LIMIT", 1000)),
                agent_defaults=AgentDefaults(
                    max_concurrent_tasks=int(os.getenv("REVFORCE_MAX_CONCURRENT_TASKS", 5)),
                    risk_tolerance=float(os.getenv("REVFORCE_RISK_TOLERANCE", 0.3)),
                ),
                strategy=StrategyConfig(
                    history_limit=int(os.getenv("REVFORCE_HISTORY_LIMIT", 100)),
                    market_cache_size=int(os.getenv("REVFORCE_MARKET_CACHE_SIZE", 50)),
                    benchmark_retries=int(os.getenv("REVFORCE_BENCHMARK_RETRIES", 3)),
                ),
            ),
            logging=LoggingConfig(
                level=os.getenv("REVFORCE_LOG_LEVEL", "INFO"),
                structured=os.getenv("REVFORCE_LOG_STRUCTURED", "true").lower() == "true",
            ),
        )
