"""
In-Memory Cloud Manager

Architectural Intent:
- Stand-in for the build server's profile registry: profiles in
  registration order, one live client per profile
- Implements CloudManagerPort, which is all the cloud client layer reads
"""

from __future__ import annotations
from typing import Any, Optional
import logging
import threading

from cirrus.domain.entities.cloud_profile import CloudProfile

logger = logging.getLogger(__name__)


class InMemoryCloudManager:
    def __init__(self) -> None:
        self._profiles: dict[str, CloudProfile] = {}
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

    def add_profile(self, profile: CloudProfile) -> CloudProfile:
        """Register a profile, or replace the parameters of an existing one."""
        with self._lock:
            self._profiles[profile.profile_id] = profile
        logger.info("Profile registered: %s", profile.profile_id)
        return profile

    def register_client(self, profile_id: str, client: Any) -> None:
        with self._lock:
            if profile_id not in self._profiles:
                raise KeyError(f"Unknown profile: {profile_id}")
            previous = self._clients.get(profile_id)
            self._clients[profile_id] = client
        if previous is not None and previous is not client:
            previous.dispose()

    def remove_profile(self, profile_id: str) -> None:
        with self._lock:
            self._profiles.pop(profile_id, None)
            client = self._clients.pop(profile_id, None)
        if client is not None:
            client.dispose()
        logger.info("Profile removed: %s", profile_id)

    def list_profiles(self) -> list[CloudProfile]:
        with self._lock:
            return list(self._profiles.values())

    def get_profile(self, profile_id: str) -> Optional[CloudProfile]:
        with self._lock:
            return self._profiles.get(profile_id)

    def get_client_if_exists(self, profile_id: str) -> Optional[Any]:
        with self._lock:
            return self._clients.get(profile_id)

    def list_clients(self) -> list[Any]:
        with self._lock:
            return list(self._clients.values())

    def shutdown(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.dispose()
