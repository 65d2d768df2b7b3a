from __future__ import annotations

import hashlib
import hmac

from attolytics.core.errors import InvalidCredential, UnknownTenant
from attolytics.schema.model import Schema, Tenant


def _digest(value: bytes) -> bytes:
    # Fixed-length digests keep compare_digest from leaking the secret's length.
    return hashlib.sha256(value).digest()


def credential_matches(expected: bytes, supplied: str | bytes) -> bool:
    # Constant-time comparison; work does not depend on where the inputs differ.
    supplied_bytes = supplied.encode("utf-8") if isinstance(supplied, str) else supplied
    return hmac.compare_digest(_digest(expected), _digest(supplied_bytes))


def authenticate(schema: Schema, tenant_id: str, supplied_credential: str | bytes) -> Tenant:
    # Resolve the tenant and confirm the credential; no state is touched.
    tenant = schema.tenant(tenant_id)
    if tenant is None:
        raise UnknownTenant(tenant_id)
    if not credential_matches(tenant.credential, supplied_credential):
        raise InvalidCredential(tenant_id)
    return tenant
