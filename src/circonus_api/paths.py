from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

from circonus_api.config import DEFAULT_API_VERSION_PREFIX
from circonus_api.errors import InvalidPathError

SEARCH_PARAM = "search"
FILTER_PREFIX = "f_"

FilterValues = Union[str, Sequence[str]]


def build_request_url(base_url: str, path: str) -> str:
    if not path:
        raise InvalidPathError("invalid Circonus API URL path (empty)")

    prefix = DEFAULT_API_VERSION_PREFIX
    if path == prefix or path.startswith(prefix + "/"):
        # the base URL already carries the version
        path = path[len(prefix):]

    if path and not path.startswith("/"):
        return f"{base_url}/{path}"
    return f"{base_url}{path}"


def build_search_params(
    query: Optional[str] = None,
    filters: Optional[Mapping[str, FilterValues]] = None,
) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = []
    if query:
        params.append((SEARCH_PARAM, query))
    for name, values in (filters or {}).items():
        key = name if name.startswith(FILTER_PREFIX) else f"{FILTER_PREFIX}{name}"
        for value in _as_values(values):
            params.append((key, value))
    # stable sort keeps repeated filter values in the order given
    params.sort(key=lambda item: item[0])
    return params


def with_query(path: str, params: Iterable[Tuple[str, str]]) -> str:
    encoded = urlencode(list(params))
    if not encoded:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{encoded}"


def _as_values(values: FilterValues) -> List[str]:
    if isinstance(values, str):
        return [values]
    return [str(value) for value in values]
