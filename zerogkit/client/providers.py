"""Provider discovery and selection."""

import logging
from typing import List, Optional

from ..types import ServiceDescriptor, ServiceMetadata
from ._utils import maybe_await, with_retry
from .broker import Broker
from .exceptions import NetworkError

logger = logging.getLogger(__name__)


async def list_providers(broker: Broker, retries: int = 3, retry_delay: float = 1.0) -> List[ServiceDescriptor]:
    """
    Fetch the available inference services.

    An empty list counts as a failed attempt, so it is retried like any other
    failure and finally raises.

    Raises:
        NetworkError: If no services are available after all attempts.
    """

    async def fetch():
        logger.debug("Fetching available services...")
        services = await maybe_await(broker.inference.list_service())
        if not services:
            raise NetworkError("No services available")
        return services

    raw_services = await with_retry(fetch, max_attempts=retries, initial_delay=retry_delay, operation_name="list services")
    services = [ServiceDescriptor.from_raw(raw) for raw in raw_services]
    logger.debug("Found %d available services", len(services))
    return services


def select_provider(services: List[ServiceDescriptor], provider: Optional[str] = None, model: Optional[str] = None) -> str:
    """
    Pick a provider address.

    An explicit ``provider`` wins. Otherwise the first service whose declared model
    contains ``model`` (case-insensitive) is used, and failing that the first service
    in network order.
    """
    if provider:
        return provider
    if not services:
        raise NetworkError("No services available")

    if model:
        needle = model.lower()
        for service in services:
            if needle in service.model.lower():
                return service.provider
        logger.debug("No listed service declares model %s, using the first provider", model)

    return services[0].provider


async def fetch_metadata(broker: Broker, provider_address: str) -> ServiceMetadata:
    raw = await maybe_await(broker.inference.get_service_metadata(provider_address))
    return ServiceMetadata.from_raw(raw)


async def find_provider_for_model(broker: Broker, services: List[ServiceDescriptor], model_name: str) -> str:
    """
    Return the address of the first service whose model name contains ``model_name``.

    Services that do not declare a model are checked against their metadata. A
    candidate whose metadata cannot be fetched is skipped.

    Raises:
        NetworkError: If no service matches.
    """
    needle = model_name.lower()

    for service in services:
        declared = service.model
        if not declared:
            try:
                declared = (await fetch_metadata(broker, service.provider)).model
            except Exception as e:
                logger.warning("Skipping provider %s, metadata unavailable: %s", service.provider, e)
                continue

        if needle in declared.lower():
            logger.debug("Provider %s serves %s", service.provider, declared)
            return service.provider

    raise NetworkError(f"No provider found for model {model_name!r}")


def available_models(services: List[ServiceDescriptor]) -> List[str]:
    """Distinct declared model names, in network order."""
    seen = []
    for service in services:
        if service.model and service.model not in seen:
            seen.append(service.model)
    return seen
