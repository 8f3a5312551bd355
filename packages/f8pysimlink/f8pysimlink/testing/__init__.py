from .in_memory_transport import InMemoryTransport

__all__ = ["InMemoryTransport"]
