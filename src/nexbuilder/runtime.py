"""Wiring: build an orchestrator from the config and the stored AI settings."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from nexbuilder.config import Config, get_config, resolve_ai_config
from nexbuilder.core.orchestrator import Orchestrator
from nexbuilder.db.engine import get_db
from nexbuilder.db.storage import SqliteStorage
from nexbuilder.integrations.ai import (
    LLMDescriptionRefiner,
    LLMPlanGenerator,
    LLMTaskDecomposer,
    LLMTaskExecutor,
)
from nexbuilder.integrations.providers import get_provider
from nexbuilder.integrations.slack import SlackNotifier

logger = logging.getLogger(__name__)


def build_orchestrator(storage: SqliteStorage, config: Config) -> Orchestrator:
    ai_config = resolve_ai_config(storage.load_config(), config)
    provider = get_provider(ai_config, config)
    logger.debug("Using provider %s (model=%s)", ai_config.provider.value, ai_config.model)

    notifier = None
    if config.slack_bot_token and config.slack_channel:
        notifier = SlackNotifier(config.slack_bot_token, config.slack_channel)

    return Orchestrator(
        storage,
        planner=LLMPlanGenerator(provider),
        executor=LLMTaskExecutor(provider),
        decomposer=LLMTaskDecomposer(provider),
        refiner=LLMDescriptionRefiner(provider),
        notifier=notifier,
    )


@contextmanager
def open_orchestrator(config: Config | None = None) -> Iterator[Orchestrator]:
    """Open the database and yield an orchestrator bound to it."""
    config = config or get_config()
    with get_db(config.db_path) as db:
        yield build_orchestrator(SqliteStorage(db), config)
