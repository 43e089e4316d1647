"""Provider registry - maps the config's `provider` field to an adapter"""

from typing import Dict, Optional

from condo_notify.database.models import WhatsAppProviderName
from .base import WhatsAppProvider
from .zpro import ZproProvider
from .zapi import ZapiProvider
from .evolution import EvolutionProvider
from .wppconnect import WppconnectProvider


PROVIDERS: Dict[str, WhatsAppProvider] = {
    WhatsAppProviderName.zpro.value: ZproProvider(),
    WhatsAppProviderName.zapi.value: ZapiProvider(),
    WhatsAppProviderName.evolution.value: EvolutionProvider(),
    WhatsAppProviderName.wppconnect.value: WppconnectProvider(),
}


def get_provider(name: Optional[str]) -> Optional[WhatsAppProvider]:
    """Return the adapter for a provider name (defaults to Z-PRO like the panel does)"""
    return PROVIDERS.get((name or WhatsAppProviderName.zpro.value).lower())
