"""Factory classes for creating configured service instances."""

from functools import partial
from typing import Optional

from .models import StoreCredentials
from .observability import MetricsCollector, StructuredLogger
from .orchestrator import ApiFactory, BatchOrchestrator
from .protocols import LoggerProtocol, ProductApiProtocol
from .graphql_client import ShopifyGraphQLClient
from .service import ProductImageService
from .settings import ServiceSettings
from .store import InMemoryRecordStore
from .transcoder import ImageTranscoder


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = "product-images", level: Optional[str] = None) -> LoggerProtocol:
        """Create a configured structured logger."""
        return StructuredLogger(name, level)


class ProductApiFactory:
    """Factory for remote product API clients."""

    @staticmethod
    def create(
        credentials: StoreCredentials, settings: Optional[ServiceSettings] = None
    ) -> ProductApiProtocol:
        """Create a GraphQL client bound to one store's credentials."""
        return ShopifyGraphQLClient(credentials, settings)


class ServiceFactory:
    """Factory for creating the complete product image service."""

    @staticmethod
    def create_service(
        api_factory: Optional[ApiFactory] = None,
        store: Optional[InMemoryRecordStore] = None,
        logger: Optional[LoggerProtocol] = None,
        settings: Optional[ServiceSettings] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> ProductImageService:
        """Create a fully wired service; any dependency may be overridden."""
        settings = settings or ServiceSettings()
        if api_factory is None:
            api_factory = partial(ProductApiFactory.create, settings=settings)
        if store is None:
            store = InMemoryRecordStore()
        if logger is None:
            logger = LoggerFactory.create_logger("product-images")

        orchestrator = BatchOrchestrator(
            store=store,
            api_factory=api_factory,
            transcoder=ImageTranscoder(jpeg_quality=settings.jpeg_quality),
            logger=logger,
            settings=settings,
            metrics_collector=metrics_collector or MetricsCollector(),
        )
        return ProductImageService(
            store=store,
            orchestrator=orchestrator,
            api_factory=api_factory,
            settings=settings,
            logger=logger,
        )
