#!/usr/bin/env python3
"""
LanguageBot -- conversation practice backend: sessions, key vault, upstream proxy.

Usage:
  python main.py serve
  python main.py serve --port 8080 --reload
  python main.py init-env --client-id 1234.apps.googleusercontent.com
  python main.py init-env --client-id ... --fallback-key AIza... --env production --force

init-env writes a .env file with freshly generated SESSION_SECRET and
ENCRYPTION_KEY values. Keep that file out of version control: losing
ENCRYPTION_KEY makes every stored API key unreadable.
"""

import argparse
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def generate_secure_key() -> str:
    """Return 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


def build_env_file(
    client_id: str,
    fallback_key: Optional[str] = None,
    port: int = 3000,
    app_env: str = "development",
) -> str:
    """Render the contents of a .env file with new secrets."""
    lines = [
        "# LanguageBot configuration",
        f"# Generated on {datetime.now(timezone.utc).isoformat()}",
        "",
        "# Google sign-in",
        f"GOOGLE_CLIENT_ID={client_id}",
        "",
        "# Security keys (DO NOT SHARE THESE)",
        f"SESSION_SECRET={generate_secure_key()}",
        f"ENCRYPTION_KEY={generate_secure_key()}",
        "",
    ]
    if fallback_key:
        lines += ["# Server fallback key used when a user has not saved their own", f"GEMINI_API_KEY={fallback_key}", ""]
    lines += ["# Application", f"PORT={port}", f"APP_ENV={app_env}", ""]
    return "\n".join(lines)


def write_env_file(path: Path, content: str, force: bool = False) -> bool:
    """Write content to path. Refuses to overwrite unless force is set.

    Returns True if the file was written.
    """
    if path.exists() and not force:
        return False
    path.write_text(content)
    return True


def _cmd_init_env(args: argparse.Namespace) -> int:
    client_id = (args.client_id or "").strip()
    if not client_id:
        print("  [!] --client-id is required (get one at https://console.cloud.google.com/).")
        return 1
    target = Path(args.output)
    content = build_env_file(client_id, args.fallback_key, args.port, args.env)
    if not write_env_file(target, content, force=args.force):
        print(f"  [!] {target} already exists. Re-run with --force to overwrite.")
        return 1
    print(f"  Created {target} with new SESSION_SECRET and ENCRYPTION_KEY.")
    if not args.fallback_key:
        print("  No fallback key configured -- users must save their own API key.")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from core.config import get_settings

    port = args.port or get_settings().port
    uvicorn.run("api.main:app", host=args.host, port=port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="languagebot",
        description="LanguageBot backend: Google sign-in, encrypted API key vault, and Gemini proxy.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=None, help="Defaults to PORT from the environment (3000).")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development only).")
    serve.set_defaults(func=_cmd_serve)

    init_env = sub.add_parser("init-env", help="Generate a .env file with new secrets.")
    init_env.add_argument("--client-id", help="Google OAuth client id.")
    init_env.add_argument("--fallback-key", default=None, help="Optional server Gemini API key.")
    init_env.add_argument("--port", type=int, default=3000)
    init_env.add_argument("--env", choices=["development", "production"], default="development")
    init_env.add_argument("--output", default=".env")
    init_env.add_argument("--force", action="store_true", help="Overwrite an existing file.")
    init_env.set_defaults(func=_cmd_init_env)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
