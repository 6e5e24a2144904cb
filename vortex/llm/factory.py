"""Provider chain factory.

Resolves the platform-configured chain from settings: the fixed priority
list, filtered to backend kinds that actually have a platform credential.
"""

import logging
from typing import Optional

from vortex.config import Settings
from vortex.llm.backends import BACKENDS, BackendInvoker
from vortex.llm.chain import ProviderChain
from vortex.llm.schemas import BackendDescriptor

logger = logging.getLogger(__name__)


def platform_backends_from_settings(settings: Settings) -> list[BackendDescriptor]:
    """Platform descriptors in priority order.

    Kinds without a configured key are skipped silently (they never become
    candidates, so they never show up as attempts).
    """
    descriptors = []
    for kind in settings.platform_chain:
        credential = settings.credential_for(kind)
        if not credential:
            logger.debug(f"Skipping platform {kind.value}: no API key configured")
            continue
        if kind not in BACKENDS:
            logger.warning(f"Skipping platform {kind.value}: no backend implementation")
            continue
        descriptors.append(BackendDescriptor(kind=kind, credential=credential))
    return descriptors


def build_provider_chain(settings: Optional[Settings] = None) -> ProviderChain:
    """Build the production ProviderChain from environment settings."""
    settings = settings or Settings.from_env()
    platform = platform_backends_from_settings(settings)
    logger.info(
        "Platform AI chain: "
        + (", ".join(d.kind.value for d in platform) if platform else "(none configured)")
    )
    return ProviderChain(
        invoke=BackendInvoker(timeout_s=settings.backend_timeout_s),
        platform_backends=platform,
    )
