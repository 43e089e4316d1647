"""WhatsApp provider abstraction for outbound notifications"""

from .base import WhatsAppProvider, ProviderSettings, SendResult, clean_phone
from .registry import PROVIDERS, get_provider

__all__ = [
    'WhatsAppProvider',
    'ProviderSettings',
    'SendResult',
    'clean_phone',
    'PROVIDERS',
    'get_provider',
]
