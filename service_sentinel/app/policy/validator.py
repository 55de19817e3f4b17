"""
Request shape validation against a service's declared method and path policy.
"""

import re

from shared.errors import ValidationError
from ..models import ProxyRequest, ServiceDefinition

# ``scheme://`` or protocol-relative ``//host`` both name another origin.
_ABSOLUTE_URL = re.compile(r"^(?:[a-z][a-z0-9+.\-]*:)?//", re.IGNORECASE)


class RequestShapeValidator:
    """Checks method and path of a proxy request for one service."""

    def validate(self, service: ServiceDefinition, request: ProxyRequest) -> str:
        """Validate the request and return the normalized (upper-case) method.

        Raises ValidationError describing the first violation.
        """
        method = self._validate_method(service, request.method)
        self._validate_path(service, request.path)
        self._validate_headers(request.headers)
        return method

    def _validate_headers(self, headers) -> None:
        # Header names and values go on the wire as ASCII.
        for name, value in (headers or {}).items():
            if not isinstance(name, str) or not isinstance(value, str):
                continue
            if not (name.isascii() and value.isascii()):
                raise ValidationError(f'Header "{name}" must contain only ASCII characters')

    def _validate_method(self, service: ServiceDefinition, method) -> str:
        if not method or not isinstance(method, str):
            raise ValidationError("Missing or invalid 'method'")

        normalized = method.upper()
        if service.allowed_methods is not None:
            allowed = [m.upper() for m in service.allowed_methods]
            if normalized not in allowed:
                raise ValidationError(
                    f'Method "{normalized}" not allowed. Allowed: {", ".join(allowed)}'
                )
        return normalized

    def _validate_path(self, service: ServiceDefinition, path) -> None:
        if not path or not isinstance(path, str):
            raise ValidationError("Missing or invalid 'path'")

        if _ABSOLUTE_URL.match(path):
            raise ValidationError("Path must be a relative path, not a full URL")

        if not path.startswith("/"):
            raise ValidationError("Path must start with '/'")

        path_only = strip_query(path)
        if any(segment in (".", "..") for segment in path_only.split("/")):
            raise ValidationError("Path must not contain '.' or '..' segments")

        if service.allowed_path_prefixes is not None:
            if not any(path_only.startswith(prefix) for prefix in service.allowed_path_prefixes):
                raise ValidationError(
                    f'Path "{path_only}" not allowed. '
                    f'Allowed prefixes: {", ".join(service.allowed_path_prefixes)}'
                )


def strip_query(path: str) -> str:
    """Drop the query string (and fragment) from a relative path."""
    return re.split(r"[?#]", path, maxsplit=1)[0]

