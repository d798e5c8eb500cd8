from .apply import ApplyEngine, apply_data
from .compute import ComputeEngine, compute_data
from .config import ODataSettings
from .conformance import (
    ConformanceGate,
    ConformanceReport,
    check_query_option_support,
    get_available_features,
    get_supported_query_options,
    negotiate_conformance_level,
    query_with_conformance,
    validate_conformance,
    validate_conformance_level,
)
from .edm import (
    EdmComplexType,
    EdmEntitySet,
    EdmEntityType,
    EdmEnumType,
    EdmModel,
    EdmNavigationProperty,
    EdmProperty,
    EdmSingleton,
)
from .evaluator import FunctionRegistry, ODataFunction
from .exceptions import (
    ApplyTransformationError,
    ComputeExpressionError,
    ConformanceError,
    EntityNotFoundError,
    FeatureNotSupportedError,
    FilterSyntaxError,
    InvalidConformanceLevelError,
    InvalidPropertyError,
    ODataError,
    QueryOptionError,
    QueryTooComplexError,
    RequestTimeoutError,
    SearchSyntaxError,
    UnknownFunctionError,
    UnsupportedComputeFunctionError,
    UnsupportedSearchFeatureError,
    UnsupportedTransformationError,
)
from .filtering import FilterEngine, filter_array
from .functions import build_default_registry
from .ordering import order_array
from .pagination import paginate_array
from .parser import QueryStringParser, parse_odata_query, validate_query_params
from .query import QueryResult, apply_odata_query
from .query_options import (
    ConformanceLevel,
    ConformanceOptions,
    ExpandItem,
    OrderByTerm,
    QueryOptions,
)
from .search import SearchEngine, search_data
from .serialize import (
    ODataResponse,
    ResponseContext,
    build_context_url,
    build_next_link,
    create_odata_response,
    serialize_collection,
    serialize_entity,
)
from .shape import apply_select, expand_data, project_array
from .utils import split_top_level

__all__ = [
    # Query options
    "QueryOptions",
    "OrderByTerm",
    "ExpandItem",
    "ConformanceLevel",
    "ConformanceOptions",
    # Parser
    "QueryStringParser",
    "parse_odata_query",
    "validate_query_params",
    "split_top_level",
    # Engines
    "FilterEngine",
    "filter_array",
    "order_array",
    "paginate_array",
    "apply_select",
    "project_array",
    "expand_data",
    "SearchEngine",
    "search_data",
    "ComputeEngine",
    "compute_data",
    "ApplyEngine",
    "apply_data",
    "QueryResult",
    "apply_odata_query",
    # Function library
    "ODataFunction",
    "FunctionRegistry",
    "build_default_registry",
    # Conformance
    "ConformanceGate",
    "ConformanceReport",
    "check_query_option_support",
    "get_available_features",
    "get_supported_query_options",
    "negotiate_conformance_level",
    "query_with_conformance",
    "validate_conformance",
    "validate_conformance_level",
    # Serialization
    "ODataResponse",
    "ResponseContext",
    "build_context_url",
    "build_next_link",
    "create_odata_response",
    "serialize_collection",
    "serialize_entity",
    # Model / config
    "EdmModel",
    "EdmEntityType",
    "EdmProperty",
    "EdmNavigationProperty",
    "EdmEntitySet",
    "EdmComplexType",
    "EdmEnumType",
    "EdmSingleton",
    "ODataSettings",
    # Exceptions
    "ODataError",
    "QueryOptionError",
    "InvalidPropertyError",
    "FilterSyntaxError",
    "UnknownFunctionError",
    "SearchSyntaxError",
    "UnsupportedSearchFeatureError",
    "ComputeExpressionError",
    "UnsupportedComputeFunctionError",
    "ApplyTransformationError",
    "UnsupportedTransformationError",
    "ConformanceError",
    "InvalidConformanceLevelError",
    "FeatureNotSupportedError",
    "QueryTooComplexError",
    "EntityNotFoundError",
    "RequestTimeoutError",
]
