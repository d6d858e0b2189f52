"""
Install guidance — manual installation hints for missing tools.

Guidance is advisory text only.  Nothing here runs a command; tools
outside the auto-install allow-list end up here and nowhere else.
"""

from __future__ import annotations

FALLBACK_URL = "https://command-not-found.com/{tool}"

# tool → hint lines
INSTALL_HINTS: dict[str, list[str]] = {
    "node": [
        "curl -o- https://raw.githubusercontent.com/nvm-sh/nvm/v0.39.7/install.sh | bash",
        "nvm install --lts",
        "or: https://nodejs.org/",
    ],
    "docker": [
        "https://docs.docker.com/get-docker/",
        "Linux: sudo apt-get install docker.io docker-compose",
    ],
    "python3": [
        "sudo apt-get install python3 python3-pip  # Ubuntu/Debian",
        "brew install python3                      # macOS",
    ],
    "git": [
        "sudo apt-get install git  # Ubuntu/Debian",
        "brew install git          # macOS",
    ],
    "kubectl": ["https://kubernetes.io/docs/tasks/tools/"],
    "helm": ["https://helm.sh/docs/intro/install/"],
    "jq": [
        "sudo apt-get install jq  # Ubuntu/Debian",
        "brew install jq          # macOS",
    ],
    "pnpm": ["npm install -g pnpm"],
    "yarn": ["npm install -g yarn"],
    "psql": ["sudo apt-get install postgresql-client"],
    "mysql": ["sudo apt-get install mysql-client"],
    "redis-cli": ["sudo apt-get install redis-tools"],
    "terraform": ["https://developer.hashicorp.com/terraform/install"],
    "go": ["https://go.dev/doc/install"],
}

# Tools that share another tool's instructions
_ALIASES = {
    "npm": "node",
    "pip3": "python3",
    "postgresql": "psql",
    "cargo": "rustc",
}

INSTALL_HINTS["rustc"] = ["curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh"]


def suggest_install(tool: str, hint: str | None = None) -> list[str]:
    """Return manual installation guidance for ``tool``.

    Args:
        tool: Tool id as declared in the manifest.
        hint: The manifest's ``tools.<id>.install_hint``; preferred
            over the built-in table when given.
    """
    if hint:
        return [line for line in hint.splitlines() if line.strip()]
    key = _ALIASES.get(tool, tool)
    if key in INSTALL_HINTS:
        return list(INSTALL_HINTS[key])
    return [f"Search: {FALLBACK_URL.format(tool=tool)}"]
