from agentrelay.backends.base import (
    AgentBackend,
    CommitInfo,
    TextGenerator,
    extract_json_object,
    sanitize_branch_name,
)

__all__ = ["AgentBackend", "CommitInfo", "TextGenerator", "extract_json_object", "sanitize_branch_name"]
