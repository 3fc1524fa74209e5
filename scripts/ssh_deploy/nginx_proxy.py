"""Nginx reverse proxy site for the deployed app."""

from __future__ import annotations

import shlex
import textwrap

from scripts.ssh_deploy.pipeline import DeployContext, StageResult
from scripts.ssh_deploy.ssh_helpers import build_remote_script_cmd, remote_script

SITES_AVAILABLE = "/etc/nginx/sites-available"
SITES_ENABLED = "/etc/nginx/sites-enabled"
HEREDOC_MARKER = "SSH_DEPLOY_NGINX_SITE"


def proxy_target(app_port: int) -> str:
    return f"http://localhost:{app_port}"


def render_nginx_site(*, app_port: int, server_name: str = "_") -> str:
    return textwrap.dedent(
        f"""\
        server {{
            listen 80;
            server_name {server_name};

            location / {{
                proxy_pass {proxy_target(app_port)};
                proxy_set_header Host $host;
                proxy_set_header X-Real-IP $remote_addr;
                proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                proxy_set_header X-Forwarded-Proto $scheme;
            }}
        }}
        """
    )


def site_paths(site_name: str) -> tuple[str, str]:
    return f"{SITES_AVAILABLE}/{site_name}", f"{SITES_ENABLED}/{site_name}"


def nginx_configure_script(*, site_name: str, site_content: str, remove_default_site: bool) -> str:
    available, enabled = site_paths(site_name)
    lines = [
        # Quoted heredoc: $host and friends reach nginx unexpanded.
        f"sudo tee {shlex.quote(available)} > /dev/null <<'{HEREDOC_MARKER}'",
        site_content.rstrip("\n"),
        HEREDOC_MARKER,
        f"sudo ln -sf {shlex.quote(available)} {shlex.quote(enabled)}",
    ]
    if remove_default_site:
        lines.append(f"sudo rm -f {SITES_ENABLED}/default")
    lines.extend(
        [
            "sudo nginx -t",
            "sudo systemctl reload nginx",
            "echo 'Nginx configured successfully.'",
        ]
    )
    return remote_script(*lines)


def nginx_remove_site_script(*, site_name: str) -> str:
    _, enabled = site_paths(site_name)
    return remote_script(
        f"sudo rm -f {shlex.quote(enabled)}",
        "sudo nginx -t",
        "sudo systemctl reload nginx",
    )


class ProxyStage:
    name = "proxy"
    title = "Configuring Nginx as reverse proxy"
    icon = "🌐"

    def run(self, ctx: DeployContext) -> StageResult:
        config = ctx.config
        content = render_nginx_site(app_port=config.app_port, server_name=config.server_name)
        ctx.runner.run(
            build_remote_script_cmd(target=config.ssh),
            input_text=nginx_configure_script(
                site_name=config.app_name,
                site_content=content,
                remove_default_site=config.remove_default_site,
            ),
        )
        return StageResult.success(
            self.name,
            "Nginx configured successfully.",
            details={"site": site_paths(config.app_name)[0], "proxy_pass": proxy_target(config.app_port)},
        )

    def rollback(self, ctx: DeployContext) -> None:
        ctx.runner.run(
            build_remote_script_cmd(target=ctx.config.ssh),
            input_text=nginx_remove_site_script(site_name=ctx.config.app_name),
        )
