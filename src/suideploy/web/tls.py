# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

import datetime as _dt
import ipaddress, os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .nginx import SslCert, install_site
from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import TlsError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.web.tls", stage="tls")


@dataclass(frozen=True)
class TlsResult:
    status: str                 # "ok" | "warn" | "failed" | "skipped"
    method: str                 # "certbot" | "self-signed" | "none"
    reason: Optional[str] = None
    cert: Optional[SslCert] = None
    auto_renew: Optional[str] = None


def is_local_domain(domain: str) -> bool:
    """Let's Encrypt will not issue for IPs, localhost or .local names."""
    d = (domain or "").strip().lower()
    if not d or d == "localhost" or d.endswith(".local") or d.endswith(".localhost"):
        return True
    try:
        ipaddress.ip_address(d)
        return True
    except ValueError:
        return False


def obtain_certificate(runner: Runner, domain: str, email: str) -> bool:
    log.info("[tls] Requesting certificate for %s", domain)
    res = runner.try_run([
        "certbot", "--nginx", "--non-interactive", "--agree-tos",
        "--email", email, "--domains", domain, "--redirect",
    ], privileged=True)
    if not res.ok:
        log.warning("[tls] certbot failed for %s: %s", domain, res.stderr.strip()[-300:])
        return False
    renew = runner.try_run(["certbot", "renew", "--dry-run"], privileged=True)
    if not renew.ok:
        log.warning("[tls] certbot renew --dry-run failed: %s", renew.stderr.strip()[-300:])
    return True


def enable_auto_renew(runner: Runner, cron_line: str = CFG.CERTBOT_CRON) -> str:
    """Prefer the packaged certbot.timer; otherwise add the root cron line once."""
    res = runner.try_run(["systemctl", "enable", "--now", "certbot.timer"], privileged=True)
    if res.ok:
        log.info("[tls] certbot.timer enabled")
        return "timer"

    current = runner.try_run(["crontab", "-l"], privileged=True)
    existing = current.stdout if current.ok else ""
    if cron_line in existing.splitlines():
        log.info("[tls] Renewal cron line already present")
        return "cron-present"
    body = (existing.rstrip("\n") + "\n" if existing.strip() else "") + cron_line + "\n"
    runner.run(["crontab", "-"], privileged=True, input_text=body)
    log.info("[tls] Renewal cron line added")
    return "cron"


def self_signed_certificate(runner: Runner, domain: str, out_dir: str | os.PathLike = CFG.SELF_SIGNED_DIR,
                            days: int = CFG.SELF_SIGNED_DAYS) -> SslCert:
    """Issue an EC P-256 certificate for ``domain``; the key is written 0600 through the runner."""
    out = Path(out_dir)
    key = ec.generate_private_key(ec.SECP256R1())

    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, domain),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, CFG.NETWORK_LABEL),
    ])
    try:
        alt = x509.IPAddress(ipaddress.ip_address(domain))
    except ValueError:
        alt = x509.DNSName(domain)

    now = _dt.datetime.now(_dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - _dt.timedelta(minutes=5))
        .not_valid_after(now + _dt.timedelta(days=int(days)))
        .add_extension(x509.SubjectAlternativeName([alt]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )

    cert_path = out / f"{domain}.crt"
    key_path = out / f"{domain}.key"
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    try:
        runner.write_file(key_path, key_pem, mode=0o600)
        runner.write_file(cert_path, cert.public_bytes(serialization.Encoding.PEM).decode("ascii"), mode=0o644)
    except OSError as exc:
        raise TlsError(f"cannot write certificate to {out}: {exc}") from exc
    log.info("[tls] Self-signed certificate written to %s (valid %d days)", cert_path, days)
    return SslCert(cert_path=str(cert_path), key_path=str(key_path))


def setup_tls(runner: Runner, domain: str, email: Optional[str], upstream_port: int,
              out_dir: str | os.PathLike = CFG.SELF_SIGNED_DIR) -> TlsResult:
    use_certbot = bool(email) and not is_local_domain(domain) and runner.which("certbot") is not None
    if use_certbot:
        if obtain_certificate(runner, domain, email):
            renew = enable_auto_renew(runner)
            return TlsResult(status="ok", method="certbot", auto_renew=renew)
        reason = "certbot_failed"
    elif not email:
        reason = "no_email"
    elif is_local_domain(domain):
        reason = "local_domain"
    else:
        reason = "certbot_missing"

    if runner.dry_run:
        return TlsResult(status="skipped", method="self-signed", reason="dry_run")

    log.warning("[tls] Falling back to a self-signed certificate (%s)", reason)
    cert = self_signed_certificate(runner, domain, out_dir)
    install_site(runner, domain, upstream_port, ssl_cert=cert)
    return TlsResult(status="warn", method="self-signed", reason=reason, cert=cert)
