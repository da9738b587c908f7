"""
Credential provider — resolves App Store Connect API credentials.

Resolution order for an app:
  1. Caller-supplied credentials (request body), if any.
  2. Per-app server credentials from the environment:
       APPLE_APP_<id>_NAME, APPLE_ISSUER_ID_<id>, APPLE_KEY_ID_<id>,
       APPLE_PRIVATE_KEY_<id>
  3. Global server credentials from Settings (issuer/key id plus either a
     base64-encoded private key or a path to the .p8 file).

Returns None ("unavailable") when nothing usable is configured — the caller
then fetches from RSS only.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from rivue.config import Settings
from rivue.schemas.fetch import AppleCredentialsIn, ConfiguredApp
from rivue.services.errors import CredentialError

logger = logging.getLogger(__name__)

_APP_NAME_VAR = re.compile(r"^APPLE_APP_(\d+)_NAME$")
_KEY_ID_IN_PEM = re.compile(r"AuthKey_([A-Z0-9]+)\.p8")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_KEY_ID = re.compile(r"^[A-Z0-9]+$")
_PEM_MARKER = "BEGIN PRIVATE KEY"


@dataclass(frozen=True)
class AppleCredentials:
    """Opaque credential bundle handed to the token signer."""

    issuer_id: str
    key_id: str
    private_key_pem: str

    def __repr__(self) -> str:  # never leak key material into logs
        return f"AppleCredentials(issuer_id={self.issuer_id!r}, key_id={self.key_id!r})"


def validate_credentials(creds: AppleCredentials) -> list[str]:
    """Return a list of format problems; empty means the bundle looks usable."""
    problems: list[str] = []
    if not _UUID.match(creds.issuer_id or ""):
        problems.append("issuer_id must be a UUID")
    if not _KEY_ID.match(creds.key_id or ""):
        problems.append("key_id must be uppercase alphanumeric")
    if _PEM_MARKER not in (creds.private_key_pem or ""):
        problems.append("private key is not a PEM-encoded PKCS#8 key")
    return problems


def from_request(body: AppleCredentialsIn) -> AppleCredentials:
    """
    Build credentials from a request body. The key id may be omitted when the
    pasted key still carries its AuthKey_<ID>.p8 filename marker.
    """
    key_id = body.key_id
    if not key_id:
        match = _KEY_ID_IN_PEM.search(body.private_key)
        key_id = match.group(1) if match else None
    if not key_id:
        raise CredentialError("Could not determine Key ID from private key", source="api")
    return AppleCredentials(
        issuer_id=body.issuer_id, key_id=key_id, private_key_pem=body.private_key
    )


class CredentialProvider:
    """Looks up server-side credentials. The environment mapping is injectable for tests."""

    def __init__(self, settings: Settings, environ: Optional[Mapping[str, str]] = None):
        self._settings = settings
        self._environ = environ if environ is not None else os.environ

    def configured_apps(self) -> list[ConfiguredApp]:
        """List apps declared via APPLE_APP_<id>_NAME."""
        apps: list[ConfiguredApp] = []
        for key, name in self._environ.items():
            match = _APP_NAME_VAR.match(key)
            if not match:
                continue
            app_id = match.group(1)
            apps.append(
                ConfiguredApp(
                    id=app_id,
                    name=name,
                    has_credentials=self._per_app(app_id) is not None,
                )
            )
        return sorted(apps, key=lambda a: a.id)

    def get(self, app_id: str) -> Optional[AppleCredentials]:
        """Return server credentials for app_id, or None if unavailable."""
        creds = self._per_app(app_id) or self._global()
        if creds is None:
            logger.info("No server App Store Connect credentials for app %s", app_id)
            return None
        problems = validate_credentials(creds)
        if problems:
            logger.error(
                "Server credentials for app %s are invalid: %s", app_id, "; ".join(problems)
            )
            return None
        return creds

    # ── Internal ──────────────────────────────────────────────────────────────

    def _per_app(self, app_id: str) -> Optional[AppleCredentials]:
        issuer = self._environ.get(f"APPLE_ISSUER_ID_{app_id}")
        key_id = self._environ.get(f"APPLE_KEY_ID_{app_id}")
        pem = self._environ.get(f"APPLE_PRIVATE_KEY_{app_id}")
        if issuer and key_id and pem:
            return AppleCredentials(issuer_id=issuer, key_id=key_id, private_key_pem=pem)
        return None

    def _global(self) -> Optional[AppleCredentials]:
        s = self._settings
        if not (s.apple_issuer_id and s.apple_key_id):
            return None
        pem = self._load_private_key()
        if pem is None:
            return None
        return AppleCredentials(
            issuer_id=s.apple_issuer_id, key_id=s.apple_key_id, private_key_pem=pem
        )

    def _load_private_key(self) -> Optional[str]:
        s = self._settings
        if s.apple_private_key_base64:
            try:
                return base64.b64decode(s.apple_private_key_base64).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                logger.error("Could not decode APPLE_PRIVATE_KEY_BASE64: %s", exc)
                return None
        if s.apple_private_key_path:
            path = Path(s.apple_private_key_path)
            if not path.is_file():
                logger.error("Private key file not found at: %s", path)
                return None
            return path.read_text(encoding="utf-8")
        logger.info("No Apple private key configured (neither base64 nor file path)")
        return None
