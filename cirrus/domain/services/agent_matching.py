"""
Agent-to-Instance Matching

Architectural Intent:
- Links a freshly authorized agent to the cloud instance that spawned it
- The only correlation available is the instance-name marker the agent
  reports; there is no foreign key between agents and instances
- Matching is best effort: failing to link one agent never blocks others

Design Decisions:
- InstanceIndex maps instance identity -> owning (profile, instance) entries
  and is maintained by clients as instances come and go, so a lookup does
  not scan every profile and every instance
- Candidates are ordered by the fleet manager's profile order; with several
  candidates the ambiguity policy decides ("first" takes the first in that
  order, "reject" links nothing) and a warning is logged either way
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional
import logging
import threading

from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.entities.cloud_instance import CloudInstance
from cirrus.domain.ports.cloud_manager_port import CloudManagerPort

logger = logging.getLogger(__name__)

POLICY_FIRST = "first"
POLICY_REJECT = "reject"
AMBIGUITY_POLICIES = (POLICY_FIRST, POLICY_REJECT)


@dataclass(frozen=True)
class MatchResult:
    profile_id: str
    client: Any
    instance: CloudInstance


class InstanceIndex:
    """Thread-safe index of live instances keyed by instance identity."""

    def __init__(self) -> None:
        self._entries: dict[str, list[tuple[str, CloudInstance]]] = {}
        self._lock = threading.Lock()

    def add(self, profile_id: str, instance: CloudInstance) -> None:
        with self._lock:
            entries = self._entries.setdefault(instance.instance_id, [])
            entries[:] = [
                (pid, inst) for pid, inst in entries if pid != profile_id
            ]
            entries.append((profile_id, instance))

    def remove(
        self, profile_id: str, instance_id: str, instance: Optional[CloudInstance] = None
    ) -> None:
        """Drop the profile's entry; with an instance, only if it is that object."""
        with self._lock:
            entries = self._entries.get(instance_id)
            if not entries:
                return
            remaining = [
                (pid, inst)
                for pid, inst in entries
                if pid != profile_id or (instance is not None and inst is not instance)
            ]
            if remaining:
                self._entries[instance_id] = remaining
            else:
                del self._entries[instance_id]

    def candidates(self, instance_id: str) -> list[tuple[str, CloudInstance]]:
        with self._lock:
            return list(self._entries.get(instance_id, ()))

    def contains(self, instance_id: str) -> bool:
        with self._lock:
            return instance_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def is_match_candidate(agent: AgentDescription, was_authorized: bool) -> bool:
    """True only on the unauthorized -> authorized edge of an unlinked cloud agent."""
    if not agent.authorized or was_authorized:
        return False
    return agent.has_instance_marker and not agent.has_profile_marker


class AgentInstanceMatcher:
    def __init__(
        self,
        cloud_manager: CloudManagerPort,
        index: InstanceIndex,
        ambiguity_policy: str = POLICY_FIRST,
    ):
        if ambiguity_policy not in AMBIGUITY_POLICIES:
            raise ValueError(
                f"Unknown ambiguity policy {ambiguity_policy!r}, "
                f"expected one of {AMBIGUITY_POLICIES}"
            )
        self._cloud_manager = cloud_manager
        self._index = index
        self._policy = ambiguity_policy

    @property
    def ambiguity_policy(self) -> str:
        return self._policy

    def match(self, agent: AgentDescription, was_authorized: bool) -> Optional[MatchResult]:
        if not is_match_candidate(agent, was_authorized):
            return None

        instance_name = agent.instance_name or ""
        candidates = self._live_candidates(instance_name)

        if not candidates:
            logger.debug(
                "No cloud instance found for agent %s (instance %s)",
                agent.agent_id,
                instance_name,
            )
            return None

        if len(candidates) > 1:
            profiles = ", ".join(c.profile_id for c in candidates)
            if self._policy == POLICY_REJECT:
                logger.warning(
                    "Agent %s reports instance %s which exists in several profiles (%s); not linking",
                    agent.agent_id,
                    instance_name,
                    profiles,
                )
                return None
            logger.warning(
                "Agent %s reports instance %s which exists in several profiles (%s); using %s",
                agent.agent_id,
                instance_name,
                profiles,
                candidates[0].profile_id,
            )

        return candidates[0]

    def _live_candidates(self, instance_name: str) -> list[MatchResult]:
        entries = self._index.candidates(instance_name)
        if not entries:
            return []

        order = {
            profile.profile_id: position
            for position, profile in enumerate(self._cloud_manager.list_profiles())
        }
        results: list[MatchResult] = []
        for profile_id, instance in entries:
            if profile_id not in order:
                continue
            client = self._cloud_manager.get_client_if_exists(profile_id)
            if client is None or client.find_instance_by_id(instance.instance_id) is not instance:
                continue
            results.append(MatchResult(profile_id=profile_id, client=client, instance=instance))

        results.sort(key=lambda r: order[r.profile_id])
        return results
