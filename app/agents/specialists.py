# =============================================================================
# Specialist Profiles — Role Framing + Restricted Source Sets
# =============================================================================
#
# A specialist is a reasoning loop pre-configured with a role instruction
# and the subset of knowledge sources it may search. The orchestrator
# delegates sub-questions to specialists by identifier.
#
# The allowed-source set is checked against the registry once, when the
# SpecialistSet is built. After that the set is read-only configuration.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from app.errors import ConfigurationError, UnknownSpecialist
from app.services.registry import KnowledgeSourceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpecialistProfile:
    """Immutable specialist configuration."""

    identifier: str
    role: str
    allowed_sources: frozenset[str]
    description: str = ""


class SpecialistSet:
    """The known specialists, validated against a registry."""

    def __init__(
        self,
        profiles: Iterable[SpecialistProfile],
        registry: KnowledgeSourceRegistry,
    ) -> None:
        self._profiles: dict[str, SpecialistProfile] = {}
        for profile in profiles:
            if not profile.allowed_sources:
                raise ConfigurationError(
                    f"Specialist '{profile.identifier}' has no allowed sources"
                )
            unknown = sorted(s for s in profile.allowed_sources if s not in registry)
            if unknown:
                raise ConfigurationError(
                    f"Specialist '{profile.identifier}' references unregistered "
                    f"sources: {', '.join(unknown)}"
                )
            self._profiles[profile.identifier] = profile

        logger.info("Loaded %d specialist profile(s)", len(self._profiles))

    def get(self, identifier: str) -> SpecialistProfile:
        try:
            return self._profiles[identifier]
        except KeyError:
            raise UnknownSpecialist(identifier) from None

    def describe_all(self) -> Iterator[tuple[str, str, list[str]]]:
        """Yield (identifier, description, sorted allowed sources)."""
        for profile in self._profiles.values():
            yield (
                profile.identifier,
                profile.description or profile.role,
                sorted(profile.allowed_sources),
            )

    def identifiers(self) -> list[str]:
        return list(self._profiles)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
