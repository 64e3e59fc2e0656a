from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from models.login_attempt import ADDRESS_MAX_LENGTH, IDENTIFIER_MAX_LENGTH

UNKNOWN_ADDRESS = "unknown"

# "_username" is what most login forms post, then the plain names
DEFAULT_IDENTIFIER_FIELDS = ("_username", "username", "email")


def client_address(request) -> str:
    # X-Forwarded-For is client controlled. Behind a proxy, PROXY_FIX_X_FOR
    # makes ProxyFix rewrite remote_addr from the trusted hops only.
    return request.remote_addr or UNKNOWN_ADDRESS


def extract_identifier(fields: Mapping[str, Any], candidates: Sequence[str] = DEFAULT_IDENTIFIER_FIELDS) -> Optional[str]:
    """
    First non-empty candidate field wins; None when the form carries none.
    Values are cut to the column width so oversized input still gets counted.
    """
    for name in candidates:
        value = fields.get(name)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value[:IDENTIFIER_MAX_LENGTH]
    return None


@dataclass(frozen=True)
class AttemptSource:
    """One inbound login attempt as the limiters see it."""

    client_address: Optional[str] = None
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        return (self.client_address or UNKNOWN_ADDRESS)[:ADDRESS_MAX_LENGTH]

    def identifier(self, candidates: Sequence[str] = DEFAULT_IDENTIFIER_FIELDS) -> Optional[str]:
        return extract_identifier(self.fields, candidates)

    @classmethod
    def from_request(cls, request) -> "AttemptSource":
        fields = dict(request.form.items())
        data = request.get_json(silent=True)
        if isinstance(data, dict):
            for key, value in data.items():
                fields.setdefault(key, value)
        return cls(client_address=client_address(request), fields=fields)
