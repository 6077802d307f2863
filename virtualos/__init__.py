"""Buffer pool, memory manager, device registry, device access and a Modbus RTU slave."""

__version__ = "1.0.0"