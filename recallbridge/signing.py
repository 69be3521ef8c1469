from __future__ import annotations

import hashlib
import hmac


def _hex_hmac(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def url_validation_token(secret_token: str, plain_token: str) -> str:
    """Answer for Zoom's ``endpoint.url_validation`` challenge."""

    return _hex_hmac(secret_token, plain_token)


def rtms_signature(
    client_id: str, client_secret: str, meeting_uuid: str, stream_id: str
) -> str:
    """Signature Recall.ai forwards to Zoom when joining an RTMS stream."""

    return _hex_hmac(client_secret, f"{client_id},{meeting_uuid},{stream_id}")
