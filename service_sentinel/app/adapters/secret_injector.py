"""
Resolution and injection of real upstream credentials.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

import httpx

from shared.errors import SecretMissingError
from ..models import SECRET_PLACEHOLDER, HeaderAuth, QueryAuth, ServiceDefinition

REDACTED = "[REDACTED]"


@dataclass(frozen=True)
class Credential:
    """A rendered credential ready to be placed on an outgoing request."""

    rendered: str = field(repr=False)
    raw: str = field(repr=False)

    def scrub(self, text: str) -> str:
        """Remove every trace of the credential from ``text``."""
        for value in (self.rendered, self.raw):
            if value:
                text = text.replace(value, REDACTED)
        return text


def render_template(template: str, secret: str) -> str:
    """Substitute the single ``${SECRET}`` placeholder."""
    return template.replace(SECRET_PLACEHOLDER, secret, 1)


class SecretInjector:
    """Looks up service secrets in the environment and applies them."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ if environ is not None else os.environ

    def resolve(self, service: ServiceDefinition) -> Credential:
        """Render the service's auth template with its secret.

        An unset or empty variable is a server misconfiguration; the error
        names the variable, never its value.
        """
        raw = self.environ.get(service.secret_env)
        if not raw:
            raise SecretMissingError(service.secret_env)
        return Credential(rendered=render_template(service.auth.template, raw), raw=raw)

    def apply(
        self,
        service: ServiceDefinition,
        credential: Credential,
        url: httpx.URL,
        headers: httpx.Headers,
    ) -> httpx.URL:
        """Place the credential on the request; return the (possibly new) URL.

        Header injection overwrites any same-named caller header regardless of
        case. Query injection replaces any caller value for the parameter.
        """
        auth = service.auth
        if isinstance(auth, HeaderAuth):
            headers[auth.header_name] = credential.rendered
            return url
        if isinstance(auth, QueryAuth):
            return url.copy_set_param(auth.query_param, credential.rendered)
        raise TypeError(f"Unsupported auth injection: {type(auth).__name__}")
