"""
Courier selection for outgoing deliveries.

Rush jobs prefer the provider with the lowest fallback priority (typically a
third-party courier); standard jobs prefer the highest (the lab's own fleet).
"""
import logging
from typing import Iterable, Optional

from labroute.models.enums import ProviderStatus, ProviderType
from labroute.models.provider import Provider
from labroute.schemas.provider import PackageSpecs, ProviderSelectionRequest

logger = logging.getLogger(__name__)


def is_capable(provider: Provider, specs: PackageSpecs) -> bool:
    """Check whether *provider* can carry a package with *specs*."""
    caps = provider.capabilities
    if specs.weight > caps.max_weight_kg:
        return False
    if specs.temperature_controlled and not caps.temperature_control:
        return False
    if specs.fragile and not caps.fragile_handling:
        return False
    return True


def select_provider(
    providers: Iterable[Provider],
    request: ProviderSelectionRequest,
) -> Optional[Provider]:
    """
    Pick the best active provider for *request*.

    Capable providers are ranked by ``integration.fallback_priority``
    (ascending for rush, descending otherwise); ties keep input order. If no
    provider is capable, the active in-house provider is returned, or None
    when there is none.
    """
    active = [p for p in providers if p.status == ProviderStatus.ACTIVE]
    capable = [p for p in active if is_capable(p, request.package_specs)]

    if capable:
        ranked = sorted(
            capable,
            key=lambda p: p.integration.fallback_priority
            if request.is_rush
            else -p.integration.fallback_priority,
        )
        chosen = ranked[0]
        logger.debug(
            "Selected provider %s (rush=%s, %d capable)",
            chosen.id, request.is_rush, len(capable),
        )
        return chosen

    fallback = next((p for p in active if p.type == ProviderType.IN_HOUSE), None)
    if fallback is None:
        logger.warning("No capable or in-house provider available")
    else:
        logger.info(
            "No provider can carry %.1f kg; falling back to in-house %s",
            request.package_specs.weight, fallback.id,
        )
    return fallback
