from agentrelay.app.controller import AgentController
from agentrelay.app.dispatch import CommandDispatcher
from agentrelay.app.task import AgentTask

__all__ = ["AgentController", "AgentTask", "CommandDispatcher"]
