"""
Shared service instances: stores, scoring pipeline, run dispatcher.

Built once per app by init_services() and stored on app.extensions so request
handlers and tests reach the same objects through get_services().
"""
import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from siteiq.config import PipelineConfig
from siteiq.database import get_session
from siteiq.pipeline.dispatcher import RunDispatcher
from siteiq.pipeline.manager import ScoringPipeline
from siteiq.services.idempotency import IdempotencyStore
from siteiq.services.records import RecordStore
from siteiq.services.runs import RunStore
from siteiq.services.schema_configs import ConfigStore

logger = logging.getLogger('siteiq.extensions')

EXTENSION_KEY = 'siteiq'


@dataclass
class Services:
    run_store: RunStore
    record_store: RecordStore
    config_store: ConfigStore
    idempotency_store: IdempotencyStore
    pipeline: ScoringPipeline
    dispatcher: RunDispatcher


def build_services(session_factory=get_session, pipeline_config: Optional[PipelineConfig] = None) -> Services:
    pipeline_config = pipeline_config or PipelineConfig.from_env()

    run_store = RunStore(session_factory)
    record_store = RecordStore(session_factory)
    config_store = ConfigStore(session_factory)
    pipeline = ScoringPipeline(run_store, record_store, config_store, config=pipeline_config,
                               logger=logging.getLogger('pipeline.manager'))

    return Services(
        run_store=run_store,
        record_store=record_store,
        config_store=config_store,
        idempotency_store=IdempotencyStore(session_factory),
        pipeline=pipeline,
        dispatcher=RunDispatcher(pipeline, run_store, max_workers=pipeline_config.worker_count),
    )


def init_services(app, services: Services):
    app.extensions[EXTENSION_KEY] = services
    logger.info("Scoring services initialized (workers=%d, max_retries=%d)",
                services.pipeline.config.worker_count, services.pipeline.config.max_retries)


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
