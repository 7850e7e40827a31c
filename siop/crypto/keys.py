"""DID signing key generation, at-rest encryption, and JWK conversion."""

import base64

import uuid_utils
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)

from siop.crypto.types import JWKEntry, KeyAlgorithm, SigningKeyData

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

_EC_CURVES: dict[KeyAlgorithm, tuple[ec.EllipticCurve, str]] = {
    KeyAlgorithm.ES256K: (ec.SECP256K1(), "secp256k1"),
    KeyAlgorithm.ES256: (ec.SECP256R1(), "P-256"),
}
_JWK_CURVE_NAMES = {curve.name: crv for curve, crv in _EC_CURVES.values()}


def _generate_private_key(algorithm: KeyAlgorithm) -> PrivateKeyTypes:
    if algorithm == KeyAlgorithm.RS256:
        return rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=RSA_KEY_SIZE,
        )
    if algorithm == KeyAlgorithm.EDDSA:
        return ed25519.Ed25519PrivateKey.generate()
    curve, _ = _EC_CURVES[algorithm]
    return ec.generate_private_key(curve)


def generate_keypair(
    algorithm: KeyAlgorithm, did: str, fragment: str | None = None
) -> SigningKeyData:
    """Generate a keypair whose kid is ``<did>#<fragment>``."""
    private_key = _generate_private_key(algorithm)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    kid = f"{did}#{fragment or str(uuid_utils.uuid7())}"
    return SigningKeyData(
        kid=kid, alg=algorithm, private_key_pem=private_pem, public_key_pem=public_pem
    )


def public_pem_from_private(private_key_pem: str) -> str:
    """Derive the SubjectPublicKeyInfo PEM of a PKCS8 private key."""
    loaded = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
    return (
        loaded.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


def private_key_matches(private_key_pem: str, public_key_pem: str) -> bool:
    """True when ``private_key_pem`` is the private half of ``public_key_pem``."""
    try:
        derived = serialization.load_pem_public_key(
            public_pem_from_private(private_key_pem).encode()
        )
        published = serialization.load_pem_public_key(public_key_pem.encode())
    except (ValueError, TypeError):
        return False
    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    der = serialization.Encoding.DER
    return derived.public_bytes(der, spki) == published.public_bytes(der, spki)


def private_key_der(private_key_pem: str) -> bytes:
    """Return the canonical PKCS8 DER bytes of a PEM private key."""
    loaded = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
    return loaded.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def encrypt_private_key(private_pem: str, fernet_key: str) -> str:
    """Encrypt a PEM private key with Fernet for storage in settings."""
    cipher = Fernet(fernet_key.encode())
    return cipher.encrypt(private_pem.encode()).decode()


def decrypt_private_key(encrypted: str, fernet_key: str) -> str:
    """Decrypt a Fernet-encrypted PEM private key."""
    cipher = Fernet(fernet_key.encode())
    return cipher.decrypt(encrypted.encode()).decode()


def _int_to_base64url(value: int, length: int | None = None) -> str:
    """Encode an integer as base64url without padding."""
    byte_length = length or (value.bit_length() + 7) // 8
    raw = value.to_bytes(byte_length, byteorder="big")
    return _bytes_to_base64url(raw)


def _bytes_to_base64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _load_public_key(public_key_pem: str) -> PublicKeyTypes:
    return serialization.load_pem_public_key(public_key_pem.encode())


def key_matches_algorithm(public_key_pem: str, algorithm: KeyAlgorithm) -> bool:
    """Check that the key type (and curve) can sign with ``algorithm``."""
    loaded = _load_public_key(public_key_pem)
    if algorithm == KeyAlgorithm.RS256:
        return isinstance(loaded, rsa.RSAPublicKey)
    if algorithm == KeyAlgorithm.EDDSA:
        return isinstance(loaded, ed25519.Ed25519PublicKey)
    if not isinstance(loaded, ec.EllipticCurvePublicKey):
        return False
    curve, _ = _EC_CURVES[algorithm]
    return loaded.curve.name == curve.name


def pem_to_jwk_entry(public_key_pem: str, kid: str, algorithm: KeyAlgorithm) -> JWKEntry:
    """Convert a PEM public key to JWK format."""
    loaded = _load_public_key(public_key_pem)
    if isinstance(loaded, rsa.RSAPublicKey):
        numbers = loaded.public_numbers()
        return JWKEntry(
            kty="RSA",
            alg=algorithm,
            kid=kid,
            n=_int_to_base64url(numbers.n),
            e=_int_to_base64url(numbers.e),
        )
    if isinstance(loaded, ec.EllipticCurvePublicKey):
        crv = _JWK_CURVE_NAMES[loaded.curve.name]
        size = (loaded.curve.key_size + 7) // 8
        point = loaded.public_numbers()
        return JWKEntry(
            kty="EC",
            alg=algorithm,
            kid=kid,
            crv=crv,
            x=_int_to_base64url(point.x, size),
            y=_int_to_base64url(point.y, size),
        )
    if isinstance(loaded, ed25519.Ed25519PublicKey):
        raw = loaded.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return JWKEntry(
            kty="OKP", alg=algorithm, kid=kid, crv="Ed25519", x=_bytes_to_base64url(raw)
        )
    raise ValueError(f"Unsupported public key type: {type(loaded).__name__}")
