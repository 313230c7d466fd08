"""Coyote is a RabbitMQ message sink."""

__version__ = "0.4.0"
