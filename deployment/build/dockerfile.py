"""Dockerfile for the PHP web image."""
from typing import Iterable, Sequence

BASE_IMAGE = "amazonlinux:2023"

PACKAGES = (
    "httpd",
    "git",
    "unzip",
    "wget",
    "php",
    "php-cli",
    "php-fpm",
    "php-mysqlnd",
    "php-bcmath",
    "php-ctype",
    "php-fileinfo",
    "php-json",
    "php-tokenizer",
    "php-mbstring",
    "php-pdo",
    "php-xml",
    "php-gd",
    "php-intl",
    "php-opcache",
    "php-zip",
    "mariadb105",
)

WEB_ROOT = "/var/www/html"
WRITABLE_DIRS = (WEB_ROOT, f"{WEB_ROOT}/storage")
EXPOSED_PORTS = (80, 3306)
ENTRY_COMMAND = ("/usr/sbin/httpd", "-D", "FOREGROUND")

# Build context layout
CONTEXT_WEB_DIR = "html"


def render_dockerfile(base_image: str = BASE_IMAGE,
                      packages: Iterable[str] = PACKAGES,
                      writable_dirs: Iterable[str] = WRITABLE_DIRS,
                      ports: Iterable[int] = EXPOSED_PORTS,
                      command: Sequence[str] = ENTRY_COMMAND) -> str:
    """Render the Dockerfile. The source is already fetched and configured in the context, so no ARG carries a secret."""
    package_list = " \\\n        ".join(packages)
    chmod_lines = "\n".join(f"RUN chmod -R 777 {d}" for d in writable_dirs)
    cmd = ", ".join(f'"{part}"' for part in command)

    return (
        f"FROM {base_image}\n"
        "\n"
        "RUN dnf update -y && \\\n"
        f"    dnf install -y \\\n        {package_list} && \\\n"
        "    dnf clean all\n"
        "\n"
        "# mod_rewrite for the application's front controller\n"
        "RUN sed -i '/<Directory \"\\/var\\/www\\/html\">/,/<\\/Directory>/ s/AllowOverride None/AllowOverride All/' "
        "/etc/httpd/conf/httpd.conf\n"
        "\n"
        f"WORKDIR {WEB_ROOT}\n"
        f"COPY {CONTEXT_WEB_DIR}/ {WEB_ROOT}/\n"
        "\n"
        f"{chmod_lines}\n"
        "\n"
        f"EXPOSE {' '.join(str(p) for p in ports)}\n"
        "\n"
        f"CMD [{cmd}]\n"
    )
