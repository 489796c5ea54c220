"""Serving certificates for the controller manager's HTTPS endpoint."""

from __future__ import annotations

import datetime
import ipaddress
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .exceptions import CertificateError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .options import CertOptions

logger = structlog.get_logger(__name__)

CERT_VALIDITY = datetime.timedelta(days=365)
CLOCK_SKEW = datetime.timedelta(hours=1)


def _key_usage(*, ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=not ca,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def generate_self_signed_cert_key(
    host: str,
    alternate_ips: Sequence[str] = (),
    alternate_dns: Sequence[str] = (),
) -> tuple[bytes, bytes]:
    """Generate a serving certificate signed by a throwaway CA.

    The returned certificate PEM holds the serving certificate followed by
    the CA certificate, so the same file can be used as a client trust bundle.

    Args:
        host: Common name and first subject alternative name
        alternate_ips: Extra IP addresses to include as SANs
        alternate_dns: Extra DNS names to include as SANs

    Returns:
        Tuple of (certificate chain PEM, private key PEM)
    """
    now = datetime.datetime.now(datetime.UTC)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"{host}-ca@{int(now.timestamp())}")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - CLOCK_SKEW)
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(ca=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    sans: list[x509.GeneralName] = []
    try:
        sans.append(x509.IPAddress(ipaddress.ip_address(host)))
    except ValueError:
        sans.append(x509.DNSName(host))
    for san in [
        *(x509.IPAddress(ipaddress.ip_address(ip)) for ip in alternate_ips),
        *(x509.DNSName(name) for name in alternate_dns),
    ]:
        if san not in sans:
            sans.append(san)

    key = ec.generate_private_key(ec.SECP256R1())
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"{host}@{int(now.timestamp())}")]))
        .issuer_name(ca_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - CLOCK_SKEW)
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(ca=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectAlternativeName(sans), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM) + ca_cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def maybe_default_with_self_signed_certs(
    cert_options: CertOptions,
    public_address: str,
    alternate_ips: Sequence[str] = ("127.0.0.1", "::1"),
    alternate_dns: Sequence[str] = ("localhost",),
) -> tuple[str, str]:
    """Resolve the serving cert/key pair, generating one if none was given.

    Explicit ``cert_file``/``key_file`` win. Otherwise a pair named
    ``<pair_name>.crt``/``<pair_name>.key`` is reused from, or written to,
    ``cert_directory``.

    Returns:
        Tuple of (cert path, key path)

    Raises:
        CertificateError: If explicit files are missing or generation fails
    """
    if cert_options.cert_file or cert_options.key_file:
        for path in (cert_options.cert_file, cert_options.key_file):
            if not path or not Path(path).is_file():
                raise CertificateError(f"serving certificate file not found: {path!r}", path=path)
        return cert_options.cert_file, cert_options.key_file

    cert_dir = Path(cert_options.cert_directory)
    cert_path = cert_dir / f"{cert_options.pair_name}.crt"
    key_path = cert_dir / f"{cert_options.pair_name}.key"

    if cert_path.is_file() and key_path.is_file():
        logger.debug("Reusing serving certificate", cert_file=str(cert_path))
        return str(cert_path), str(key_path)

    try:
        cert_pem, key_pem = generate_self_signed_cert_key(public_address, alternate_ips, alternate_dns)
        cert_dir.mkdir(parents=True, exist_ok=True)
        cert_path.write_bytes(cert_pem)
        key_path.touch(mode=0o600)
        key_path.write_bytes(key_pem)
    except (OSError, ValueError) as e:
        raise CertificateError(f"unable to generate self signed cert: {e}", path=str(cert_path)) from e

    logger.info("Generated self-signed serving certificate", cert_file=str(cert_path), key_file=str(key_path))
    return str(cert_path), str(key_path)
