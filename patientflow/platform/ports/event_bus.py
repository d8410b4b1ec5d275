from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Where visit lifecycle events go once the outbox relay has claimed them."""
    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...
