# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..system.shell import Runner
from ..utils import config as CFG
from ..utils.errors import NginxError
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.web.nginx", stage="nginx")


@dataclass(frozen=True)
class SslCert:
    cert_path: str
    key_path: str


_PROXY_HEADERS = """\
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_cache_bypass $http_upgrade;"""


def _server_body(domain: str, upstream: str) -> str:
    return f"""\
    # Security headers
    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-XSS-Protection "1; mode=block" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "no-referrer-when-downgrade" always;
    add_header Content-Security-Policy "default-src 'self' http: https: data: blob: 'unsafe-inline'" always;

    # Gzip compression
    gzip on;
    gzip_vary on;
    gzip_min_length 1024;
    gzip_proxied expired no-cache no-store private must-revalidate auth;
    gzip_types text/plain text/css text/xml text/javascript application/x-javascript application/xml+rss application/javascript application/json;

    access_log {CFG.NGINX_LOG_DIR}/{domain}_access.log;
    error_log {CFG.NGINX_LOG_DIR}/{domain}_error.log;

    location / {{
        proxy_pass {upstream};
{_PROXY_HEADERS}

        proxy_connect_timeout 60s;
        proxy_send_timeout 60s;
        proxy_read_timeout 60s;

        proxy_buffering on;
        proxy_buffer_size 4k;
        proxy_buffers 8 4k;
        proxy_busy_buffers_size 8k;
    }}

    location ~* \\.(js|css|png|jpg|jpeg|gif|ico|svg|woff|woff2|ttf|eot)$ {{
        proxy_pass {upstream};
        expires 1y;
        add_header Cache-Control "public, immutable";
    }}

    location /api/ {{
        proxy_pass {upstream};
        proxy_cache_bypass $http_pragma;
        proxy_cache_revalidate on;
    }}

    location /health {{
        access_log off;
        return 200 "healthy\\n";
        add_header Content-Type text/plain;
    }}

    location ~ /\\. {{
        deny all;
        access_log off;
        log_not_found off;
    }}

    location ~* \\.(txt|log)$ {{
        deny all;
        access_log off;
        log_not_found off;
    }}
"""


def render_site(domain: str, upstream_port: int, ssl_cert: Optional[SslCert] = None) -> str:
    upstream = f"http://127.0.0.1:{int(upstream_port)}"
    body = _server_body(domain, upstream)
    if ssl_cert is None:
        return f"server {{\n    listen 80;\n    server_name {domain};\n\n{body}}}\n"
    return (
        f"server {{\n    listen 80;\n    server_name {domain};\n    return 301 https://$host$request_uri;\n}}\n\n"
        f"server {{\n    listen 443 ssl http2;\n    server_name {domain};\n\n"
        f"    ssl_certificate {ssl_cert.cert_path};\n"
        f"    ssl_certificate_key {ssl_cert.key_path};\n"
        f"    ssl_protocols TLSv1.2 TLSv1.3;\n\n{body}}}\n"
    )


def site_paths(domain: str) -> tuple[Path, Path]:
    return Path(CFG.NGINX_AVAILABLE) / domain, Path(CFG.NGINX_ENABLED) / domain


def test_config(runner: Runner) -> None:
    res = runner.try_run(["nginx", "-t"], privileged=True)
    if not res.ok:
        raise NginxError(f"nginx configuration test failed: {res.stderr.strip()}")


def reload(runner: Runner) -> None:
    res = runner.try_run(["systemctl", "reload", "nginx"], privileged=True)
    if not res.ok:
        log.warning("[nginx] reload failed, starting nginx instead")
        runner.run(["systemctl", "start", "nginx"], privileged=True)


def install_site(runner: Runner, domain: str, upstream_port: int, ssl_cert: Optional[SslCert] = None) -> Path:
    available, enabled = site_paths(domain)
    runner.write_file(available, render_site(domain, upstream_port, ssl_cert), mode=0o644, privileged=True)
    if runner.symlink(available, enabled, privileged=True):
        log.info("[nginx] Enabled site %s", domain)
    test_config(runner)
    reload(runner)
    log.info("[nginx] %s -> 127.0.0.1:%s", domain, upstream_port)
    return available


def remove_default_site(runner: Runner) -> bool:
    default = Path(CFG.NGINX_ENABLED) / "default"
    if not (default.exists() or default.is_symlink()):
        return False
    runner.run(["rm", "-f", str(default)], privileged=True)
    return True
