"""
Agent Registry - Agent Lifecycle Management

Manages agent spawning, lookup, retirement and scaling. Each spawned agent
gets its own strategy instance from the strategy registry.
"""

import logging
import uuid
from typing import Dict, List, Optional

from revforce.core.config import WorkforceConfig
from revforce.core.exceptions import AgentNotFound, InvalidConfiguration
from revforce.core.models import AgentConfig
from revforce.execution.actions import ActionPort
from revforce.execution.agent import Agent
from revforce.strategies.registry import create_strategy
from revforce.strategies.revenue import BenchmarkSource

logger = logging.getLogger(__name__)


class AgentRegistry:
    """
    Holds the agent workforce in registration order.

    Responsibilities:
    - Spawn agents by type tag
    - Register externally built agents
    - Start/stop and retire agents
    - Scale the workforce to a target size
    """

    def __init__(
        self,
        config: Optional[WorkforceConfig] = None,
        action_port: Optional[ActionPort] = None,
        benchmark_source: Optional[BenchmarkSource] = None,
    ):
        """
        Args:
            config: Workforce configuration (agent defaults, types, limits)
            action_port: Side-effect port handed to every revenue strategy
            benchmark_source: Benchmark provider handed to every revenue strategy
        """
        self.config = config or WorkforceConfig()
        self.action_port = action_port
        self.benchmark_source = benchmark_source
        self.agents: Dict[str, Agent] = {}

    def spawn_agent(self, agent_type: str, name: Optional[str] = None) -> Agent:
        """
        Create, register and return a new (stopped) agent of agent_type.

        Raises:
            InvalidConfiguration: If agent_type is unknown or max_agents is reached
        """
        if len(self.agents) >= self.config.max_agents:
            raise InvalidConfiguration(
                f"Workforce is at max_agents={self.config.max_agents}"
            )

        strategy = create_strategy(
            agent_type,
            config=self.config.strategy,
            action_port=self.action_port,
            benchmark_source=self.benchmark_source,
        )
        defaults = self.config.agent_defaults
        agent_id = f"{agent_type}_{uuid.uuid4().hex[:8]}"
        config = AgentConfig(
            id=agent_id,
            type=agent_type,
            name=name or f"{agent_type.capitalize()} Agent {len(self.agents) + 1}",
            priority=defaults.priority,
            max_concurrent_tasks=defaults.max_concurrent_tasks,
            performance_threshold=defaults.performance_threshold,
            risk_tolerance=defaults.risk_tolerance,
        )
        agent = Agent(config, strategy)
        self.register_agent(agent)
        logger.info("Spawned %s agent: %s", agent_type, agent_id)
        return agent

    def register_agent(self, agent: Agent) -> Agent:
        self.agents[agent.id] = agent
        return agent

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        """Get agent by ID."""
        return self.agents.get(agent_id)

    def list_agents(self, agent_type: Optional[str] = None) -> List[Agent]:
        """
        List all agents in registration order, optionally filtered by type.
        """
        agents = list(self.agents.values())
        if agent_type:
            agents = [a for a in agents if a.get_config().type == agent_type]
        return agents

    def retire_agent(self, agent_id: str) -> Agent:
        """
        Stop and remove an agent. In-flight tasks on it still complete.
        """
        agent = self.agents.pop(agent_id, None)
        if agent is None:
            raise AgentNotFound(f"Agent {agent_id} not found in registry")
        agent.stop()
        logger.info("Retired agent: %s", agent_id)
        return agent

    def start_all(self) -> None:
        for agent in self.agents.values():
            agent.start()

    def stop_all(self) -> None:
        for agent in self.agents.values():
            agent.stop()

    def scale(self, target_size: int, start: bool = True) -> None:
        """
        Grow (round-robin over configured types) or shrink (newest first)
        the workforce to target_size, capped at max_agents.
        """
        target_size = max(0, min(target_size, self.config.max_agents))
        current = len(self.agents)

        if target_size > current:
            types = self.config.agent_types
            if not types:
                raise InvalidConfiguration("No agent types configured")
            for i in range(target_size - current):
                agent = self.spawn_agent(types[(current + i) % len(types)])
                if start:
                    agent.start()
        elif target_size < current:
            for agent_id in list(self.agents)[target_size:]:
                self.retire_agent(agent_id)

        logger.info("Workforce scaled from %d to %d agents", current, len(self.agents))

    def get_agent_statistics(self) -> Dict:
        """Get agent registry statistics."""
        agents = self.list_agents()
        distribution: Dict[str, int] = {}
        for agent in agents:
            agent_type = agent.get_config().type
            distribution[agent_type] = distribution.get(agent_type, 0) + 1

        performances = [a.get_performance() for a in agents]
        return {
            "total_agents": len(agents),
            "active_agents": len([a for a in agents if a.is_active]),
            "available_agents": len([a for a in agents if a.is_available()]),
            "agent_type_distribution": distribution,
            "avg_success_rate": (
                sum(p.success_rate for p in performances) / len(performances) if performances else 0.0
            ),
            "total_revenue": sum(p.revenue_generated for p in performances),
        }
