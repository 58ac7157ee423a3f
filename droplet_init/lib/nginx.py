from __future__ import annotations

from html import escape

LANDING_MARKER = "droplet-init: web server is up"


def render_landing_page(domain: str) -> str:
    d = escape(domain)
    return "\n".join(
        [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '  <meta charset="utf-8">',
            f"  <title>{d}</title>",
            "</head>",
            "<body>",
            f"  <h1>{d}</h1>",
            f"  <p>{LANDING_MARKER}</p>",
            "</body>",
            "</html>",
            "",
        ]
    )


def render_vhost(*, domain: str, alt_domain: str, webroot: str) -> str:
    # Plain HTTP only. certbot --nginx adds the 443 server and the redirect.
    names = " ".join(n for n in (domain, alt_domain) if n)
    return "\n".join(
        [
            "server {",
            "    listen 80 default_server;",
            "    listen [::]:80 default_server;",
            f"    server_name {names};",
            "",
            f"    root {webroot};",
            "    index index.html;",
            "",
            "    location / {",
            "        try_files $uri $uri/ =404;",
            "    }",
            "}",
            "",
        ]
    )
