"""
Domain Services Package
"""

from cirrus.domain.services.agent_matching import (
    AgentInstanceMatcher,
    InstanceIndex,
    MatchResult,
    is_match_candidate,
)

__all__ = [
    "AgentInstanceMatcher",
    "InstanceIndex",
    "MatchResult",
    "is_match_candidate",
]
