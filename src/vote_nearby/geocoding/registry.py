"""Name lookup for geocoding providers."""

from typing import Optional

from vote_nearby.config import Settings

from .base import GeocodeService, GeocodeServiceType


class GeocodeServiceRegistry:
    """Providers keyed by ``service_name``, filled in by the ``register`` decorator."""

    _services: dict[str, type[GeocodeService]] = {}

    @classmethod
    def register(cls, service_class: type[GeocodeService]) -> type[GeocodeService]:
        """Class decorator that makes a provider available by name.

        Raises:
            ValueError: If a different class already uses the same name
        """
        name = _class_property(service_class, "service_name")
        existing = cls._services.get(name)
        if existing is not None and existing is not service_class:
            raise ValueError(
                f"Geocoding service '{name}' is already registered by {existing.__name__}"
            )
        cls._services[name] = service_class
        return service_class

    @classmethod
    def service_type(cls, name: str) -> GeocodeServiceType:
        """Request style of a registered provider, read without instantiating it."""
        return _class_property(cls._lookup(name), "service_type")

    @classmethod
    def get_service(
        cls,
        name: str,
        config: Settings,
        service_type: Optional[GeocodeServiceType] = None,
    ) -> GeocodeService:
        """Instantiate a provider by name.

        Args:
            name: Service identifier ('census' or 'nominatim')
            config: Settings passed to the provider constructor
            service_type: If given, the provider must use this request style

        Raises:
            ValueError: If the name is unknown or the provider has the wrong type
        """
        service_class = cls._lookup(name)
        if service_type is not None and cls.service_type(name) is not service_type:
            matching = ", ".join(cls.list_services(service_type)) or "none"
            raise ValueError(
                f"Geocoding service '{name}' is not a {service_type.value} service. "
                f"{service_type.value.capitalize()} services: {matching}"
            )
        return service_class(config)

    @classmethod
    def list_services(cls, service_type: Optional[GeocodeServiceType] = None) -> list[str]:
        """Sorted provider names, optionally only those of one request style."""
        return sorted(
            name
            for name, service_class in cls._services.items()
            if service_type is None or _class_property(service_class, "service_type") is service_type
        )

    @classmethod
    def _lookup(cls, name: str) -> type[GeocodeService]:
        if name not in cls._services:
            raise ValueError(
                f"Unknown geocoding service: {name}. "
                f"Available services: {', '.join(cls.list_services())}"
            )
        return cls._services[name]


def _class_property(service_class: type[GeocodeService], attribute: str):
    # Identity properties return constants, so they can be read off the class
    return getattr(service_class, attribute).fget(None)
