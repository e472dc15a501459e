"""Widget type and sensor driver registries.

Register widget type variants and host sensor drivers by name. The
runtime looks a widget's type tag up here to decide where its live value
lives and which events a write raises; the sensor façade looks driver
names from the runtime config up here.

Usage:
    @register_widget("slider", "gauge")
    class NumericWidget(WidgetVariant):
        ...

    @register_driver("icm20948")
    class ICM20948Driver(SensorDriver):
        ...
"""

import logging

logger = logging.getLogger(__name__)

WIDGET_REGISTRY = {}
DRIVER_REGISTRY = {}


def register_widget(*names):
    """Decorator to register a widget variant class for one or more type tags."""
    def decorator(cls):
        for name in names:
            WIDGET_REGISTRY[name] = cls
            logger.debug("Registered widget type: %s -> %s", name, cls.__name__)
        cls.type_names = tuple(names)
        return cls
    return decorator


def register_driver(name):
    """Decorator to register a sensor driver class by name."""
    def decorator(cls):
        DRIVER_REGISTRY[name] = cls
        logger.debug("Registered sensor driver: %s -> %s", name, cls.__name__)
        return cls
    return decorator
