from typing import Dict, Type

from ..exceptions import AdapterNotRegistered

_ADAPTERS: Dict[str, Type] = {}


def register_adapter(slug: str):
    def decorator(cls):
        cls.slug = slug
        _ADAPTERS[slug] = cls
        return cls

    return decorator


def is_registered(slug: str) -> bool:
    return slug in _ADAPTERS


def adapter_class_for(slug: str):
    try:
        return _ADAPTERS[slug]
    except KeyError:
        raise AdapterNotRegistered(f"No courier adapter registered for '{slug}'") from None


def get_adapter(provider, environment: str, vendor=None, **kwargs):
    return adapter_class_for(provider.slug)(provider, environment, vendor=vendor, **kwargs)


def registered_slugs():
    return sorted(_ADAPTERS)
