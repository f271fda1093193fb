"""
Custom exceptions for the OBD WiFi proxy.

This module defines the exception classes raised by the transport layer,
the configuration loader and the proxy server, so callers can tell a
dead serial link apart from a bad configuration file.
"""


class ProxyException(Exception):
    """
    Base exception for all proxy-related errors.

    This is the parent class for all custom exceptions raised by the proxy.
    """
    pass


class TransportException(ProxyException):
    """
    Exception raised when communication with the vehicle adapter fails.

    Raised by transports when a write, read or status query on the
    serial/Bluetooth link cannot be completed.
    """
    pass


class TransportTimeoutError(TransportException):
    """
    Exception raised when a transport operation times out.

    Raised when the adapter does not accept a write or does not answer a
    connection attempt within the configured timeout.
    """
    pass


class NotConnectedException(TransportException):
    """
    Exception raised when attempting I/O on a transport that is not open.
    """
    pass


class ConfigurationException(ProxyException):
    """
    Exception raised when the proxy configuration is missing or invalid.
    """
    pass
