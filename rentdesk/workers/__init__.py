# rentdesk/workers/__init__.py
import importlib
import logging

import dramatiq
from dramatiq.brokers.rabbitmq import RabbitmqBroker
from dramatiq.brokers.stub import StubBroker

from rentdesk.core.config import settings

logger = logging.getLogger(__name__)

WORKER_MODULES = ["rentdesk.workers.tasks"]


def setup_broker() -> dramatiq.Broker:
    """RabbitMQ in deployments; DRAMATIQ_BROKER=stub for tests and local runs."""
    if settings.DRAMATIQ_BROKER == "stub":
        broker = StubBroker()
    else:
        broker = RabbitmqBroker(url=settings.RABBITMQ_URL)
    dramatiq.set_broker(broker)
    return broker


broker = setup_broker()


def discover_workers() -> None:
    """Import task modules so their actors and schedules register."""
    for module in WORKER_MODULES:
        importlib.import_module(module)
        logger.info(f"Loaded worker module {module}")
