"""
Verification of ID tokens issued by the external identity provider.

The provider signs OpenID Connect ID tokens with keys published at a JWKS
endpoint. A token is accepted when its signature, issuer, audience and
expiry check out and it carries a verified email address.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

import jwt
from django.conf import settings
from jwt import PyJWKClient

logger = logging.getLogger(__name__)


class IdentityVerificationError(Exception):
    """The ID token was rejected."""


@dataclass(frozen=True)
class IdentityClaims:
    email: str
    name: str = ''
    picture: str = ''
    subject: str = ''


@lru_cache(maxsize=4)
def get_jwks_client(url):
    """One JWKS client per endpoint; it caches the fetched keys itself."""
    return PyJWKClient(url)


def verify_identity_token(token):
    """
    Verify an ID token and extract the identity it proves.

    Args:
        token: Encoded ID token

    Returns:
        IdentityClaims: Email, display name, avatar and subject

    Raises:
        IdentityVerificationError: If the token is malformed, signed with an
            unknown key, expired, issued for another audience or issuer, or
            lacks a verified email
    """
    config = settings.IDENTITY_PROVIDER

    if not token or not isinstance(token, str):
        raise IdentityVerificationError('Missing identity token.')

    try:
        signing_key = get_jwks_client(config['JWKS_URL']).get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=config['ALGORITHMS'],
            audience=config['AUDIENCE'] or None,
            leeway=config.get('LEEWAY_SECONDS', 0),
            options={
                'require': ['exp', 'iss'],
                'verify_aud': bool(config['AUDIENCE']),
            },
        )
    except jwt.PyJWKClientError as e:
        raise IdentityVerificationError(f'Signing key not found: {e}') from e
    except jwt.InvalidTokenError as e:
        raise IdentityVerificationError(str(e)) from e

    if claims.get('iss') not in config['ISSUERS']:
        raise IdentityVerificationError('Token issuer is not trusted.')

    email = claims.get('email')
    if not email:
        raise IdentityVerificationError('Token does not carry an email address.')

    # Some providers send the flag as the string "true"
    if str(claims.get('email_verified', '')).lower() != 'true':
        raise IdentityVerificationError('Email address is not verified.')

    return IdentityClaims(
        email=email.strip().lower(),
        name=claims.get('name') or '',
        picture=claims.get('picture') or '',
        subject=claims.get('sub') or '',
    )
