"""Storage routing across interchangeable object-storage backends."""

import asyncio
from collections.abc import Callable

from ..config import Config
from ..error_handling import ConfigurationError, DeleteError, InvalidLocatorError, InvalidProviderError
from ..logging_config import get_logger
from ..models.photo import ObjectLocation, StorageProvider
from .firebase_storage import FirebaseStorageBackend
from .gcs_rest import GCSRestBackend
from .gcs_server import GCSServerBackend
from .storage_backend import DEFAULT_FOLDER, StorageBackend

logger = get_logger(__name__)

BackendFactory = Callable[[], StorageBackend]


class BackendRegistry:
    """
    Static table of available backends.

    Factories are registered up front; each backend is built the first time it
    is needed and reused afterwards.
    """

    def __init__(self, factories: dict[StorageProvider, BackendFactory] | None = None) -> None:
        self._factories: dict[StorageProvider, BackendFactory] = dict(factories or {})
        self._instances: dict[StorageProvider, StorageBackend] = {}

    def register(self, provider: StorageProvider, factory: BackendFactory) -> None:
        self._factories[provider] = factory
        self._instances.pop(provider, None)

    def is_registered(self, provider: StorageProvider) -> bool:
        return provider in self._factories

    @property
    def providers(self) -> list[StorageProvider]:
        return list(self._factories)

    def get(self, provider: StorageProvider) -> StorageBackend:
        """
        Return the backend for ``provider``, building it on first use.

        Raises:
            InvalidProviderError: If no factory is registered for the provider
            ConfigurationError: If the backend cannot be built
        """
        if provider not in self._factories:
            raise InvalidProviderError(
                f"No storage backend registered for provider: {provider.value}",
                details={"provider": provider.value},
            )
        if provider not in self._instances:
            self._instances[provider] = self._factories[provider]()
        return self._instances[provider]

    def built(self) -> list[StorageBackend]:
        return list(self._instances.values())


def default_registry(config: Config) -> BackendRegistry:
    """Registry with every backend this package ships, configured from ``config``."""
    return BackendRegistry(
        {
            StorageProvider.FIREBASE: lambda: FirebaseStorageBackend.from_config(config),
            StorageProvider.GCS_BROWSER: lambda: GCSRestBackend.from_config(config),
            StorageProvider.GCS_SERVER: lambda: GCSServerBackend.from_config(config),
        }
    )


class StorageRouter:
    """
    Dispatches storage calls to the active backend and picks that backend.

    Every dispatch method also takes an explicit ``provider`` so that callers
    with several uploads in flight can pin a backend per call instead of
    relying on the shared active provider.
    """

    MANAGED_PROVIDER = StorageProvider.FIREBASE
    SELECTION_ORDER = (StorageProvider.FIREBASE, StorageProvider.GCS_BROWSER)

    def __init__(self, registry: BackendRegistry, default_provider: StorageProvider = MANAGED_PROVIDER) -> None:
        self.registry = registry
        self._active_provider = default_provider
        self._selection_lock = asyncio.Lock()
        logger.info("storage_router_initialized", provider=default_provider.value, backends=[
            p.value for p in registry.providers
        ])

    @property
    def active_provider(self) -> StorageProvider:
        return self._active_provider

    def get_provider(self) -> StorageProvider:
        return self._active_provider

    def set_provider(self, provider: StorageProvider | str) -> StorageProvider:
        """
        Switch the active provider for subsequent calls.

        Raises:
            InvalidProviderError: If ``provider`` is not a known, registered provider
        """
        parsed = StorageProvider.parse(provider)
        if parsed is None or not self.registry.is_registered(parsed):
            raise InvalidProviderError(
                f"Invalid storage provider: {provider}",
                details={"provider": str(provider), "available": [p.value for p in self.registry.providers]},
            )
        if parsed is not self._active_provider:
            logger.info("storage_provider_changed", previous=self._active_provider.value, provider=parsed.value)
        self._active_provider = parsed
        return parsed

    def backend(self, provider: StorageProvider | None = None) -> StorageBackend:
        return self.registry.get(provider or self._active_provider)

    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER, provider: StorageProvider | None = None) -> str:
        return self.backend(provider).locate(file_name, folder)

    async def upload(
        self,
        data: bytes,
        file_name: str,
        folder: str = DEFAULT_FOLDER,
        content_type: str | None = None,
        provider: StorageProvider | None = None,
    ) -> str:
        """Upload through ``provider`` (or the active one) and return the locator."""
        target = provider or self._active_provider
        logger.debug("storage_upload_dispatched", provider=target.value, file_name=file_name, folder=folder)
        return await self.backend(target).upload(data, file_name, folder, content_type)

    async def exists(
        self, file_name: str, folder: str = DEFAULT_FOLDER, provider: StorageProvider | None = None
    ) -> bool:
        return await self.backend(provider).exists(file_name, folder)

    def _owner_of(self, locator: str) -> StorageBackend:
        for provider in self.registry.providers:
            try:
                backend = self.registry.get(provider)
            except ConfigurationError:
                continue
            if backend.owns(locator):
                return backend
        raise InvalidLocatorError(
            f"Locator does not match any storage backend: {locator}",
            details={"locator": locator},
        )

    def parse_locator(self, locator: str) -> tuple[StorageProvider, ObjectLocation]:
        """
        Find the backend that produced ``locator`` and parse it.

        Raises:
            InvalidLocatorError: If no backend recognizes the locator
        """
        backend = self._owner_of(locator)
        return backend.provider, backend.parse(locator)

    async def delete(self, locator: str) -> None:
        """
        Delete an object through the backend whose namespace the locator belongs to.

        "Not found" from any backend counts as success.
        """
        backend = self._owner_of(locator)
        try:
            await backend.delete(locator)
        except DeleteError as e:
            if not e.is_not_found:
                raise
            logger.warning("object_already_deleted", provider=backend.provider.value, locator=locator)

    async def probe(self, provider: StorageProvider | None = None) -> bool:
        target = provider or self._active_provider
        try:
            backend = self.registry.get(target)
        except (ConfigurationError, InvalidProviderError) as e:
            logger.warning("storage_backend_unavailable", provider=target.value, error=str(e))
            return False
        return await backend.probe()

    async def select_best_provider(self) -> StorageProvider:
        """
        Probe backends in fixed order and activate the first reachable one.

        When nothing answers, the managed backend is activated anyway.
        """
        async with self._selection_lock:
            for provider in self.SELECTION_ORDER:
                if not self.registry.is_registered(provider):
                    continue
                if await self.probe(provider):
                    self.set_provider(provider)
                    logger.info("storage_provider_selected", provider=provider.value)
                    return provider

            logger.warning("storage_probes_failed_using_default", provider=self.MANAGED_PROVIDER.value)
            self.set_provider(self.MANAGED_PROVIDER)
            return self.MANAGED_PROVIDER

    async def aclose(self) -> None:
        for backend in self.registry.built():
            await backend.close()


def create_storage_router(config: Config | None = None) -> StorageRouter:
    """Build a router over the default backends."""
    return StorageRouter(default_registry(config or Config()))
