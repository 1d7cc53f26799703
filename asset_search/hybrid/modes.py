"""Search mode selection.

Both functions are pure: the mode is decided from what the request carries
and whether store-side fusion is in play, nothing else.
"""

from enum import Enum
from typing import Union

import structlog

from ..errors import SearchValidationError
from ..models import MISSING_QUERY_MESSAGE, SearchMode

logger = structlog.get_logger("search_service.modes")


class HybridMethod(str, Enum):
    """Operator preference for how hybrid requests are fused."""
    AUTO = "auto"
    MANUAL = "manual"
    NATIVE = "native"


def resolve_native_fusion(
    method: Union[HybridMethod, str],
    store_supports_native: bool
) -> bool:
    """Decide once whether hybrid requests use store-side fusion.

    - ``auto``: follow the store's capability tier
    - ``manual``: always fuse client-side
    - ``native``: store-side when available, otherwise client-side with a warning
    """
    method = HybridMethod(method)

    if method is HybridMethod.MANUAL:
        return False

    if method is HybridMethod.NATIVE and not store_supports_native:
        logger.warning(
            "Native hybrid search requested but store lacks rank fusion, using manual fusion",
            hybrid_method=method.value
        )
        return False

    return store_supports_native


def select_search_mode(
    has_free_text: bool,
    has_keywords: bool,
    native_fusion: bool
) -> SearchMode:
    """Pick the retrieval path for a request.

    Raises
    - SearchValidationError: neither query form is present
    """
    if has_free_text and has_keywords:
        return SearchMode.NATIVE_HYBRID if native_fusion else SearchMode.MANUAL_HYBRID
    if has_keywords:
        return SearchMode.TEXT_ONLY
    if has_free_text:
        return SearchMode.VECTOR_ONLY
    raise SearchValidationError(MISSING_QUERY_MESSAGE)
