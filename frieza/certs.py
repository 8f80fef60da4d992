#!/usr/bin/env python3
"""Self-signed PEM bundles for ``wss://`` test targets.

The bundle always covers the loopback names, so one file serves
``wss://localhost`` and ``wss://127.0.0.1`` alike.
"""
from __future__ import annotations

import argparse
import ipaddress
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


@dataclass(frozen=True)
class PemBundle:
    key: bytes
    cert: bytes

    def combined(self) -> bytes:
        return self.key + self.cert


def general_name(host: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


def alt_names(hosts: Iterable[str]) -> List[x509.GeneralName]:
    names: List[x509.GeneralName] = []
    for host in (*hosts, *LOOPBACK_HOSTS):
        if not host:
            continue
        name = general_name(host)
        if name not in names:
            names.append(name)
    return names


def self_signed(hosts: Sequence[str] = (), days: int = 365) -> PemBundle:
    """Sign a server certificate for ``hosts`` (plus loopback) with a fresh P-256 key."""
    key = ec.generate_private_key(ec.SECP256R1())
    primary = next((h for h in hosts if h), LOOPBACK_HOSTS[0])
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, primary)])
    issued = datetime.now(timezone.utc) - timedelta(minutes=1)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(issued)
        .not_valid_after(issued + timedelta(days=max(1, days)))
        .add_extension(x509.SubjectAlternativeName(alt_names(hosts)), critical=False)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .sign(key, hashes.SHA256())
    )
    return PemBundle(
        key=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
        cert=cert.public_bytes(serialization.Encoding.PEM),
    )


def write_combined(path: Path, common_name: str = "localhost", days: int = 365) -> Path:
    """Write key and certificate into one PEM, as ``frieza-testserver --certfile`` expects."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(self_signed([common_name], days).combined())
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Write a self-signed key+certificate PEM for frieza-testserver",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-n", "--name", dest="names", action="append", default=[],
        help="Host name or address to cover, repeatable; loopback is always included",
    )
    parser.add_argument("-d", "--days", type=int, default=365, help="Validity days")
    parser.add_argument("-o", "--output", type=Path, default=Path("certs/server.pem"), help="Output PEM path")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(self_signed(args.names, args.days).combined())
    print(f"wrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
