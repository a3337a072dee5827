"""Geocoding provider adapters."""

from typing import List, Optional

import requests

from forest_reconcile.config_manager import GeocodingConfig
from forest_reconcile.exceptions import ConfigurationError
from forest_reconcile.geocoding.providers.base import GeocodeProvider, ProviderResult
from forest_reconcile.geocoding.providers.google import GoogleGeocodingProvider
from forest_reconcile.geocoding.providers.nominatim import NominatimProvider

PROVIDER_CLASSES = {
    "nominatim": NominatimProvider,
    "google": GoogleGeocodingProvider,
}


def build_providers(
    config: GeocodingConfig,
    session: Optional[requests.Session] = None,
) -> List[GeocodeProvider]:
    """Instantiate providers in configured priority order.

    Args:
        config: Geocoding configuration
        session: Shared HTTP session (one per provider if omitted)

    Returns:
        Providers, fast/free first as listed in config.providers
    """
    providers: List[GeocodeProvider] = []
    for name in config.providers:
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_class is None:
            raise ConfigurationError(f"Unknown geocoding provider: {name}")
        options = dict(config.provider_options.get(name, {}))
        providers.append(provider_class(
            session=session,
            timeout_s=config.request_timeout_s,
            retry_attempts=config.retry_attempts,
            retry_base_delay_s=config.retry_base_delay_s,
            **options,
        ))
    return providers


__all__ = [
    "GeocodeProvider",
    "GoogleGeocodingProvider",
    "NominatimProvider",
    "PROVIDER_CLASSES",
    "ProviderResult",
    "build_providers",
]
