"""
=============================================================================
TLS CONFIGURATION
=============================================================================

Gemini is TLS-only: there is no plaintext variant of the protocol. This
module builds the server-side ssl.SSLContext from one of three identity
sources.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    IDENTITY SOURCES                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   identity_path = capsule.p12 / .pfx                                 │
    │      └── PKCS#12 bundle, decoded with `cryptography`                 │
    │                                                                      │
    │   identity_path = capsule.crt (+ key_path = capsule.key)             │
    │      └── PEM chain and key, loaded directly by ssl                   │
    │                                                                      │
    │   nothing configured                                                 │
    │      └── ad-hoc self-signed certificate for `hostname`               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY SELF-SIGNED IS FINE
=============================================================================

Gemini clients normally use TOFU (trust on first use): they pin the
certificate they saw the first time instead of checking it against a
CA. A self-signed certificate is therefore the norm, but it must stay
the SAME across restarts or clients will warn. That is why the ad-hoc
certificate is cached on disk, in a private per-user directory, and
reused. Files another user could have planted or read are never reused.

=============================================================================
PKCS#12
=============================================================================

ssl.SSLContext can only load PEM files from disk. A PKCS#12 bundle is
decoded in memory, then written to a private temporary directory as PEM
with the key re-encrypted under a random one-time password, loaded, and
deleted again.

=============================================================================
"""

import os
import ssl
import stat
import secrets
import logging
import datetime
import tempfile
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .config import ServerConfig


logger = logging.getLogger(__name__)

PKCS12_SUFFIXES = (".p12", ".pfx")


class TLSConfigurationError(Exception):
    """The TLS identity could not be loaded."""


def _base_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    # Gemini requires TLS 1.2 or newer
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def _load_pem(
    context: ssl.SSLContext,
    certfile: str | Path,
    keyfile: Optional[str | Path],
    passphrase: Optional[str | bytes],
) -> None:
    try:
        context.load_cert_chain(certfile, keyfile, password=passphrase)
    except (OSError, ssl.SSLError) as e:
        # ssl.SSLError is an OSError; both mean unreadable or wrong passphrase
        raise TLSConfigurationError(f"Cannot load certificate {certfile}: {e}") from e


def _load_pkcs12(
    context: ssl.SSLContext,
    path: str | Path,
    passphrase: Optional[str],
) -> None:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise TLSConfigurationError(f"Cannot read identity {path}: {e}") from e

    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key, certificate, chain = pkcs12.load_key_and_certificates(data, password)
    except ValueError as e:
        raise TLSConfigurationError(f"Cannot decode identity {path}: {e}") from e

    if key is None or certificate is None:
        raise TLSConfigurationError(f"Identity {path} lacks a key or certificate")

    one_time_password = secrets.token_bytes(32)
    cert_pem = b"".join(
        c.public_bytes(serialization.Encoding.PEM) for c in [certificate, *(chain or [])]
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(one_time_password),
    )

    # TemporaryDirectory is created mode 0700
    with tempfile.TemporaryDirectory(prefix="geminiserver-") as tmp:
        certfile = os.path.join(tmp, "identity.crt")
        keyfile = os.path.join(tmp, "identity.key")
        with open(certfile, "wb") as fp:
            fp.write(cert_pem)
        with open(keyfile, "wb") as fp:
            fp.write(key_pem)
        _load_pem(context, certfile, keyfile, one_time_password)


def _default_certificate_directory() -> Path:
    """
    Per-user cache directory for ad-hoc certificates, created mode 0700.

    Raises:
        TLSConfigurationError: The directory belongs to another user.
    """
    cache_home = os.environ.get("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache")
    directory = Path(cache_home) / "geminiserver"
    try:
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        st = directory.lstat()
        if not stat.S_ISDIR(st.st_mode) or st.st_uid != os.getuid():
            raise TLSConfigurationError(f"Certificate directory {directory} is not ours")
        if st.st_mode & 0o077:
            directory.chmod(0o700)
    except OSError as e:
        raise TLSConfigurationError(f"Cannot prepare certificate directory {directory}: {e}") from e
    return directory


def _is_owned_file(path: Path, forbidden_mode: int) -> bool:
    """True if ``path`` is a regular file we own with none of ``forbidden_mode`` set."""
    try:
        st = path.lstat()
    except FileNotFoundError:
        return False
    return (
        stat.S_ISREG(st.st_mode)
        and st.st_uid == os.getuid()
        and not st.st_mode & forbidden_mode
    )


def _write_new(path: Path, data: bytes, mode: int) -> None:
    # O_EXCL also refuses a symlink planted at the path
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "wb") as fp:
        fp.write(data)


def generate_ad_hoc_certificate(
    hostname: str,
    directory: Optional[str | Path] = None,
    days: int = 365,
) -> tuple[str, str]:
    """
    Create (or reuse) a self-signed certificate for ``hostname``.

    Files are named ``<hostname>.crt`` / ``<hostname>.key`` inside
    ``directory`` (``$XDG_CACHE_HOME/geminiserver`` by default). Existing
    files are reused so the certificate fingerprint survives restarts,
    but only when both are regular files owned by the current user, the
    key is not accessible to anyone else and the certificate is not
    writable by anyone else. Otherwise they are replaced.

    Returns:
        (certfile, keyfile) paths.

    Raises:
        TLSConfigurationError: Stale files could not be replaced.
    """
    directory = Path(directory) if directory else _default_certificate_directory()
    certfile = directory / f"{hostname}.crt"
    keyfile = directory / f"{hostname}.key"

    if _is_owned_file(keyfile, 0o077) and _is_owned_file(certfile, 0o022):
        return str(certfile), str(keyfile)

    if os.path.lexists(certfile) or os.path.lexists(keyfile):
        logger.warning(f"Not reusing ad-hoc certificate in {directory}: wrong owner or mode")

    logger.info(f"Generating ad-hoc certificate for {hostname}")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    key_data = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )

    subject_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
    not_valid_before = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject_name)
        .issuer_name(subject_name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_valid_before)
        .not_valid_after(not_valid_before + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(hostname)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )

    try:
        keyfile.unlink(missing_ok=True)
        certfile.unlink(missing_ok=True)
        _write_new(keyfile, key_data, 0o600)
        _write_new(certfile, certificate.public_bytes(serialization.Encoding.PEM), 0o644)
    except OSError as e:
        raise TLSConfigurationError(f"Cannot write ad-hoc certificate to {directory}: {e}") from e

    return str(certfile), str(keyfile)

    logger.info(f"Generating ad-hoc certificate for {hostname}")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    key_data = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    fd = os.open(keyfile, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fp:
        fp.write(key_data)

    subject_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
    not_valid_before = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject_name)
        .issuer_name(subject_name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_valid_before)
        .not_valid_after(not_valid_before + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(hostname)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )
    with open(certfile, "wb") as fp:
        fp.write(certificate.public_bytes(serialization.Encoding.PEM))

    return str(certfile), str(keyfile)


def create_tls_context(config: ServerConfig) -> ssl.SSLContext:
    """
    Build the server-side TLS context described by ``config``.

    Raises:
        TLSConfigurationError: Identity missing, unreadable, or the
                               passphrase is wrong.
    """
    context = _base_context()

    if config.identity_path is None:
        certfile, keyfile = generate_ad_hoc_certificate(config.hostname)
        _load_pem(context, certfile, keyfile, None)
        logger.warning(f"No identity configured, using ad-hoc certificate {certfile}")
    elif config.identity_path.lower().endswith(PKCS12_SUFFIXES):
        _load_pkcs12(context, config.identity_path, config.identity_passphrase)
        logger.info(f"Loaded PKCS#12 identity {config.identity_path}")
    else:
        _load_pem(context, config.identity_path, config.key_path, config.identity_passphrase)
        logger.info(f"Loaded PEM identity {config.identity_path}")

    return context
