from .store import ServiceRecord, ServiceRegistry
from .client import RegistryClient

__all__ = ['ServiceRecord', 'ServiceRegistry', 'RegistryClient']
