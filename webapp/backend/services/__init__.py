"""Services package: the marketplace's business rules, independent of HTTP."""

from .errors import (
    AuthenticationRequired,
    Conflict,
    Forbidden,
    Internal,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    SchedulingConflict,
    ServiceError,
)

__all__ = [
    'AuthenticationRequired',
    'Conflict',
    'Forbidden',
    'Internal',
    'InvalidArgument',
    'InvalidTransition',
    'NotFound',
    'SchedulingConflict',
    'ServiceError',
]
