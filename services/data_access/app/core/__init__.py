"""Response normalization, field transforms and error types."""

from services.data_access.app.core.errors import (
    ApiNetworkError,
    ApiRequestError,
    ApiStatusError,
    AuthenticationError,
    CredentialError,
    DataAccessError,
    ValidationError,
    extract_error_message,
)
from services.data_access.app.core.normalizer import (
    MalformedBody,
    NormalizedResponse,
    ResponseKind,
    classify,
    decode_body,
    normalize,
)
from services.data_access.app.core.pagination import parse_pagination
from services.data_access.app.core.transformer import FieldConvention, FieldTransformer, clean_params

__all__ = [
    "ApiNetworkError",
    "ApiRequestError",
    "ApiStatusError",
    "AuthenticationError",
    "CredentialError",
    "DataAccessError",
    "ValidationError",
    "extract_error_message",
    "MalformedBody",
    "NormalizedResponse",
    "ResponseKind",
    "classify",
    "decode_body",
    "normalize",
    "parse_pagination",
    "FieldConvention",
    "FieldTransformer",
    "clean_params",
]
