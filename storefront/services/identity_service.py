"""
Identity token verification.

Browsers sign in with the external identity provider and post the resulting
ID token to the server. This service checks it before a session is opened:
- Signature verification against the provider's JWKS
- Issuer and audience (project id) validation
- Expiration check
"""
import logging
import time

import requests
from authlib.jose import jwt, JsonWebKey
from authlib.jose.errors import JoseError
from flask import current_app

from storefront.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

JWKS_CACHE_SECONDS = 3600


class IdentityVerifier:
    """Verifies ID tokens issued for the configured identity project."""

    def __init__(self, project_id=None, issuer=None, jwks_url=None, timeout=None):
        config = current_app.config
        self.project_id = project_id or config.get('IDENTITY_PROJECT_ID')
        self.issuer = issuer or config.get('IDENTITY_ISSUER')
        self.jwks_url = jwks_url or config.get('IDENTITY_JWKS_URL')
        self.timeout = timeout or config.get('IDENTITY_HTTP_TIMEOUT', 10)

        if not self.project_id:
            raise ValueError("Missing identity configuration. Set IDENTITY_PROJECT_ID")

        self._jwks = None
        self._jwks_fetched_at = 0.0

        logger.info(f"IdentityVerifier initialized for project: {self.project_id}")

    def verify(self, id_token):
        """
        Validate and decode an ID token.

        Args:
            id_token: JWT ID token from the identity provider

        Returns:
            dict: Decoded claims (sub, email, email_verified, ...)

        Raises:
            AuthenticationError: If the token is missing, malformed, expired
                or issued for another project
        """
        if not id_token or not isinstance(id_token, str):
            raise AuthenticationError('ID token required', reason='missing_token')

        try:
            claims = jwt.decode(
                id_token,
                self._get_jwks(),
                claims_options={
                    'iss': {'essential': True, 'value': self.issuer},
                    'aud': {'essential': True, 'value': self.project_id},
                    'sub': {'essential': True},
                },
            )
            claims.validate()
        except JoseError as e:
            logger.warning(f"ID token validation failed (JOSE error): {e}")
            raise AuthenticationError('Invalid token', reason='invalid_token')
        except ValueError as e:
            logger.warning(f"ID token validation failed: {e}")
            raise AuthenticationError('Invalid token', reason='invalid_token')

        if not claims.get('email'):
            raise AuthenticationError('Token carries no email address', reason='invalid_token')

        logger.info(f"Successfully validated ID token for email: {claims.get('email')}")
        return dict(claims)

    def _get_jwks(self):
        """JSON Web Key Set, refreshed hourly."""
        if self._jwks is not None and time.monotonic() - self._jwks_fetched_at < JWKS_CACHE_SECONDS:
            return self._jwks

        try:
            response = requests.get(self.jwks_url, timeout=self.timeout)
            response.raise_for_status()
            self._jwks = JsonWebKey.import_key_set(response.json())
            self._jwks_fetched_at = time.monotonic()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to fetch JWKS: {e}")
            raise AuthenticationError('Identity provider unavailable', status_code=503,
                                      reason='identity_unavailable')
        return self._jwks


# Singleton instance
_identity_verifier = None


def get_identity_verifier():
    """Get or create IdentityVerifier singleton instance."""
    global _identity_verifier
    if _identity_verifier is None:
        _identity_verifier = IdentityVerifier()
    return _identity_verifier
