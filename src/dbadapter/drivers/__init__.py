"""
Driver registry.
"""
from dbadapter.drivers.base import _DRIVER_REGISTRY
from dbadapter.drivers.base import DbapiConnection as DbapiConnection
from dbadapter.drivers.base import DbapiDriver as DbapiDriver
from dbadapter.drivers.base import DbapiStatement as DbapiStatement
from dbadapter.drivers.base import Driver as Driver
from dbadapter.drivers.base import ErrorInfo as ErrorInfo
from dbadapter.drivers.base import register_driver as register_driver
from dbadapter.drivers.postgres import PostgresDriver as PostgresDriver
from dbadapter.drivers.sqlite import SQLiteDriver as SQLiteDriver


def _validate_driver(name: str) -> None:
    """Raise ValueError if driver is not registered."""
    if name not in _DRIVER_REGISTRY:
        available = list(_DRIVER_REGISTRY.keys())
        raise ValueError(f'Unsupported driver: {name}. Available: {available}')


def get_driver(name: str) -> Driver:
    """Get a new driver instance for a driver name."""
    _validate_driver(name)
    return _DRIVER_REGISTRY[name]()


def get_driver_class(name: str) -> type[Driver]:
    """Get the driver class for a driver name without instantiating."""
    _validate_driver(name)
    return _DRIVER_REGISTRY[name]


def get_available_drivers() -> list[str]:
    """Return list of registered driver names."""
    return list(_DRIVER_REGISTRY.keys())


def is_supported_driver(name: str) -> bool:
    """Check if a driver is supported."""
    return name in _DRIVER_REGISTRY
