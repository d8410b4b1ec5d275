from patientflow.core.config import settings
from patientflow.platform.ports.event_bus import EventBusPort
from patientflow.platform.adapters.bus_noop import NoopEventBus
from patientflow.platform.adapters.bus_redis import RedisEventBus

class ProviderRegistry:
    _event_bus: EventBusPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def reset(cls):
        cls._event_bus = None

registry = ProviderRegistry()
