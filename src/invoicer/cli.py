from __future__ import annotations

import argparse
import getpass
import json
import logging
import stat
import sys
from dataclasses import asdict
from importlib.resources import files
from pathlib import Path

import requests.exceptions
import yaml

_TEMPLATES = [
    "settings.yaml.example",
    "parties/acme-supplies.yaml.example",
    "invoices/example.yaml.example",
]


def _check_keyring_available() -> bool:
    """Check if keyring is installed with a usable backend."""
    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring

        return not isinstance(keyring.get_keyring(), FailKeyring)
    except Exception:
        return False


def _upsert_env_var(env_file: Path, key: str, value: str) -> None:
    """Set or update a key=value pair in a .env file, creating it if needed."""
    from dotenv import set_key

    env_file.parent.mkdir(parents=True, exist_ok=True)
    if not env_file.exists():
        env_file.touch()
    set_key(str(env_file), key, value)


def _warn_open_permissions(env_file: Path) -> None:
    """Warn if .env file has group/other read permissions (Unix only)."""
    try:
        mode = env_file.stat().st_mode
        if mode & (stat.S_IRGRP | stat.S_IROTH):
            print(f"\n  WARNING: {env_file} is readable by other users.")
            print("  Recommended: chmod 600", env_file)
    except OSError:
        pass


def _setup_token(config_dir: Path) -> bool:
    """Ask for the render/send service token and store it. Returns True if stored."""
    token = getpass.getpass("Service API token (empty to skip): ").strip()
    if not token:
        print("  Token setup skipped.")
        return False

    from invoicer.config import _set_keyring_token

    if _check_keyring_available() and _set_keyring_token(token):
        print("  Token stored in the system keyring.")
        return True

    env_file = config_dir / ".env"
    _upsert_env_var(env_file, "INVOICER_API_TOKEN", token)
    print(f"  Keyring unavailable, token saved to {env_file}")
    _warn_open_permissions(env_file)
    return True


def _init_config() -> None:
    """Copy bundled config templates to the user's config/data directories."""
    from invoicer.config import get_config_dir, get_data_dir

    config_dir = get_config_dir()
    data_dir = get_data_dir()
    templates = files("invoicer") / "templates"

    config_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    for rel in _TEMPLATES:
        dest = config_dir / rel
        if dest.exists():
            print(f"  exists:  {dest}")
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        src = templates
        for part in rel.split("/"):
            src = src / part
        with src.open("rb") as f:
            dest.write_bytes(f.read())
        print(f"  created: {dest}")

    print()
    print(f"Config: {config_dir}")
    print(f"Data:   {data_dir}")
    print()
    try:
        answer = input("Configure the render/send service token now? [y/N]: ").strip().lower()
        if answer in ("y", "yes"):
            _setup_token(config_dir)
    except (EOFError, KeyboardInterrupt):
        print()


def _print_view(view) -> None:
    header = view.header
    print(f"Invoice {header.id or '?'}  issued {header.issue_date or '-'}  due {header.due_date or '-'}")
    if header.note:
        print(f"  {header.note}")
    for title, party in (("From", view.supplier), ("To", view.customer)):
        print()
        print(f"{title}: {party.name or '-'}")
        if party.identifier:
            print(f"  ABN: {party.identifier}")
        for line in (*party.contact, *party.details, *party.identifications):
            print(f"  {line}")
    if view.lines:
        print()
        for line in view.lines:
            print(f"  {line.id or '':>3}  {line.name or '':<30} x{line.quantity or '?':<6} "
                  f"{line.unit_price:>12} {line.line_total:>12}")
    if view.tax is not None:
        print()
        print("Tax summary")
        for row in view.tax.rows:
            print(f"  {row.scheme:<10} {row.taxable_amount:>12} {row.percent:>6} {row.tax_amount:>12}")
    if view.totals:
        print()
        for row in view.totals:
            print(f"  {row.label + ':':<28}{row.amount:>14}")


def _cmd_build(args: argparse.Namespace) -> int:
    from invoicer.services.invoicing import prepare, save_xml

    prepared = prepare(args.file)
    print(save_xml(prepared, args.output))
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    from invoicer.services.invoice_reader import Detail
    from invoicer.services.invoicing import load_view
    from invoicer.services.xml_parser import parse_ubl

    if args.json:
        tree = parse_ubl(Path(args.file).read_bytes())
        print(json.dumps(tree, indent=2, ensure_ascii=False))
        return 0
    view = load_view(args.file, Detail[args.detail.upper()])
    if args.as_dict:
        print(json.dumps(asdict(view), indent=2, ensure_ascii=False))
    else:
        _print_view(view)
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    from invoicer.services.invoicing import open_invoice, render, send

    prepared = open_invoice(args.file)
    if args.to:
        result = send(
            prepared,
            args.to,
            args.output_type,
            style=args.style,
            language=args.language,
        )
        print(f"Sent invoice {prepared.invoice_id} to {args.to}")
        if result:
            print(json.dumps(result, ensure_ascii=False))
        return 0

    content = render(prepared, args.output_type, style=args.style, language=args.language)
    out = Path(args.output or f"export.{args.output_type}")
    out.write_bytes(content)
    print(out)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    from invoicer.config import OUTPUT_TYPES, SUPPORTED_LANGUAGES

    parser = argparse.ArgumentParser(prog="invoicer", description="UBL invoice builder")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create example config files")

    p = sub.add_parser("build", help="build UBL XML from an invoice YAML file")
    p.add_argument("file")
    p.add_argument("-o", "--output", help="output path (default: data/issued/)")
    p.set_defaults(func=_cmd_build)

    p = sub.add_parser("show", help="display a UBL invoice")
    p.add_argument("file")
    p.add_argument("--json", action="store_true", help="print the parsed XML tree")
    p.add_argument("--as-dict", action="store_true", help="print the projected view as JSON")
    p.add_argument("--detail", choices=["minimal", "default", "full"], default="default")
    p.set_defaults(func=_cmd_show)

    p = sub.add_parser("export", help="render or send an invoice (YAML or UBL XML)")
    p.add_argument("file")
    p.add_argument("--as", dest="output_type", choices=OUTPUT_TYPES, default="pdf")
    p.add_argument("-o", "--output", help="output file (default: export.<type>)")
    p.add_argument("--to", help="recipient email address or phone number")
    p.add_argument("--style", type=int, default=0)
    p.add_argument("--language", choices=sorted(SUPPORTED_LANGUAGES), default="en")
    p.set_defaults(func=_cmd_export)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the invoicer CLI."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init":
        _init_config()
        return

    from invoicer.services.exceptions import ServiceError

    try:
        code = args.func(args)
    except (
        ValueError,
        KeyError,
        OSError,
        yaml.YAMLError,
        ServiceError,
        requests.exceptions.RequestException,
    ) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
