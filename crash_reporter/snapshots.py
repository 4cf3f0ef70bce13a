"""
Plain-data snapshots of the request and response being reported.

The pipeline only ever sees these dataclasses, never Flask objects, so it
can be exercised without an application context.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


def _multidict_to_dict(values) -> Dict[str, Any]:
    """Collapse a werkzeug ``MultiDict``; repeated keys keep a list."""
    return {
        key: items if len(items) > 1 else items[0]
        for key, items in values.to_dict(flat=False).items()
    }


@dataclass
class RequestSnapshot:
    """The parts of a request that end up in a crash report."""

    method: str
    uri: str
    path: str
    host: str
    protocol: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    request: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    server: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_flask(cls, request) -> "RequestSnapshot":
        query_string = request.query_string.decode("latin-1")
        uri = request.path + (f"?{query_string}" if query_string else "")
        return cls(
            method=request.method,
            uri=uri,
            path=request.path,
            host=request.host,
            protocol=request.environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
            headers={key: value for key, value in request.headers.items()},
            request=_multidict_to_dict(request.form),
            query=_multidict_to_dict(request.args),
            cookies=dict(request.cookies),
            # Drop wsgi.input, wsgi.errors and other live objects
            server={
                key: value
                for key, value in request.environ.items()
                if isinstance(value, (str, int, float, bool))
            },
        )


@dataclass
class ResponseSnapshot:
    """Status line, headers and body of the response sent to the client."""

    status: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: str = ""
    protocol: str = "HTTP/1.1"

    @classmethod
    def from_flask(cls, response) -> "ResponseSnapshot":
        body = ""
        if not response.is_streamed and not response.direct_passthrough:
            # Bodies may be binary or in any charset
            body = response.get_data().decode("utf-8", "replace")
        return cls(status=response.status, headers=list(response.headers.items()), body=body)

    def render(self) -> str:
        """The full response as it went over the wire."""
        lines = [f"{self.protocol} {self.status}"]
        lines.extend(f"{name}: {value}" for name, value in self.headers)
        return "\r\n".join(lines) + "\r\n\r\n" + self.body

    def header_text(self) -> str:
        """Everything in front of the body in the rendered response."""
        rendered = self.render()
        if not self.body:
            return rendered
        return rendered.rsplit(self.body, 1)[0]
