"""
Custom exceptions for PRPC-AGGREGATOR library
"""


class PrpcAggregatorException(Exception):
    """Base exception for prpc-aggregator library"""
    pass


class TransportError(PrpcAggregatorException):
    """Network-related error for a single RPC attempt"""

    def __init__(self, endpoint: str, operation: str, message: str):
        self.endpoint = endpoint
        self.operation = operation
        super().__init__(f"Transport error for {endpoint} during {operation}: {message}")


class ValidationError(PrpcAggregatorException):
    """Input validation error"""
    pass


class ConfigError(ValidationError):
    """Configuration file could not be read or parsed"""
    pass


class DecodeError(ValidationError):
    """A raw node record could not be decoded"""

    def __init__(self, index: int, message: str):
        self.index = index
        super().__init__(f"Record {index}: {message}")
