"""
Default source registry: one adapter per configured API key.
"""
import logging
from typing import List, Optional

from prospector.core.config import Settings, settings as default_settings
from prospector.sources.apollo import ApolloSource
from prospector.sources.base import BaseSource
from prospector.sources.exa import ExaSource
from prospector.sources.leadmagic import LeadMagicSource
from prospector.sources.parallel import ParallelSource

logger = logging.getLogger(__name__)

SOURCE_CLASSES = {
    "apollo": (ApolloSource, "apollo_api_key"),
    "leadmagic": (LeadMagicSource, "leadmagic_api_key"),
    "exa": (ExaSource, "exa_api_key"),
    "parallel": (ParallelSource, "parallel_api_key"),
}


def build_default_sources(config: Optional[Settings] = None) -> List[BaseSource]:
    """Instantiate every source whose API key is set, ordered by priority."""
    config = config or default_settings
    sources: List[BaseSource] = []
    for name, (source_cls, key_attr) in SOURCE_CLASSES.items():
        api_key = getattr(config, key_attr, None)
        if not api_key:
            logger.debug(f"Source {name} disabled: {key_attr.upper()} not set")
            continue
        sources.append(source_cls(api_key=api_key))

    if not sources:
        logger.warning("No data sources configured. Discovery will rely on LLM suggestions only.")
    return sorted(sources, key=lambda s: s.priority)
