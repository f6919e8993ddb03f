#!/usr/bin/env python3
"""
Report Ledger CLI

Command-line access to the client API.

Usage:
    reportchain [--simulate FIXTURE] [--sender ADDRESS] <command> [options]

Commands:
    role        Resolve the role of an address
    verdict     Reconciled validation verdict of a report
    diagnose    Diagnose an action without submitting it
    execute     Execute an action
    config      Configuration management

Signing: with --simulate the fixture's in-memory ledger is used and --sender
picks the acting address. Against a node, the private key is read from the
environment variable named by --key-env (default REPORTCHAIN_PRIVATE_KEY);
without one the node signs for --sender.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from eth_account import Account

from reportchain import __version__
from reportchain.config import ConfigError, ConfigManager, get_config_manager
from reportchain.errors import ReportChainError, TransactionFailed
from reportchain.ledger import LedgerError
from reportchain.observability import configure_logging

DEFAULT_KEY_ENV = "REPORTCHAIN_PRIVATE_KEY"


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(json.loads(json.dumps(data, default=str)), default_flow_style=False, sort_keys=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def parse_params(pairs: List[str]) -> Dict[str, str]:
    """KEY=VALUE pairs to a dict; values stay strings for the action's own coercion."""
    params: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise CLIError(f"--param expects KEY=VALUE, got {pair!r}")
        params[key.strip()] = value
    return params


class ReportChainCLI:
    """Main CLI application."""

    def __init__(self, client_factory: Optional[Callable[[argparse.Namespace], Any]] = None):
        self.client_factory = client_factory or self._build_client
        self.parser = argparse.ArgumentParser(
            prog="reportchain",
            description="Report ledger client",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"reportchain {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument("--config", "-c", help="Configuration file (YAML)")
        self.parser.add_argument("--simulate", metavar="FIXTURE",
                                 help="Run against an in-memory ledger seeded from a YAML fixture")
        self.parser.add_argument("--sender", help="Acting address")
        self.parser.add_argument("--key-env", default=DEFAULT_KEY_ENV,
                                 help=f"Environment variable holding the signing key (default: {DEFAULT_KEY_ENV})")

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        role = self.subparsers.add_parser("role", help="Resolve the role of an address")
        role.add_argument("address")
        role.add_argument("--by-institution", action="store_true", help="Also list per-institution roles")

        verdict = self.subparsers.add_parser("verdict", help="Reconciled verdict of a report")
        verdict.add_argument("report_id", type=int)

        diagnose = self.subparsers.add_parser("diagnose", help="Diagnose an action")
        diagnose.add_argument("action")
        diagnose.add_argument("--param", "-p", action="append", default=[], metavar="KEY=VALUE")
        diagnose.add_argument("--caller", help="Diagnose for this address instead of the sender")

        execute = self.subparsers.add_parser("execute", help="Execute an action")
        execute.add_argument("action")
        execute.add_argument("--param", "-p", action="append", default=[], metavar="KEY=VALUE")
        execute.add_argument("--wait", action="store_true", help="Wait for the receipt")
        execute.add_argument("--timeout", type=float, help="Receipt timeout in seconds")

        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")
        config_sub.add_parser("show", help="Show current configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")
        get = config_sub.add_parser("get", help="Get a configuration value")
        get.add_argument("path", help="Config path (e.g. orchestrator.safety_margin)")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        fmt = OutputFormat(parsed.format)
        try:
            self._load_config(parsed)
            result = self._dispatch(parsed)
            if result is not None:
                print(format_output(result, fmt))
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except TransactionFailed as e:
            print(format_output(e.to_dict(), fmt))
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 2

        except (ReportChainError, ConfigError, LedgerError) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 2 if isinstance(e, ReportChainError) else 1

    def _load_config(self, args: argparse.Namespace) -> None:
        if args.config:
            ConfigManager.reset()
            get_config_manager().load_from_file(args.config)
        else:
            get_config_manager().load_defaults()
        obs = get_config_manager().config.observability
        configure_logging("error" if args.quiet else obs.log_level.get(), obs.log_format.get())

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    def _build_client(self, args: argparse.Namespace) -> Any:
        from reportchain.client import LedgerClient
        from reportchain.memory import InMemoryLedger
        from reportchain.schema import load_yaml

        config = get_config_manager().config
        if args.simulate:
            path = Path(args.simulate)
            if not path.exists():
                raise CLIError(f"Fixture not found: {path}")
            data = load_yaml(path)
            if not isinstance(data, dict) or "owner" not in data:
                raise CLIError(f"Fixture must be a mapping with an owner: {path}")
            ledger = InMemoryLedger.from_fixture(data)
            sender = args.sender or data.get("sender") or ledger.owner
            return LedgerClient.for_ledger(ledger, sender, config)

        key = os.environ.get(args.key_env)
        account = Account.from_key(key) if key else None
        if account is None and not args.sender:
            raise CLIError(f"Set {args.key_env} or pass --sender")
        return LedgerClient.from_config(config, account=account, sender=args.sender)

    # Query handlers
    def _handle_role(self, args: argparse.Namespace) -> Any:
        client = self.client_factory(args)

        async def resolve() -> Dict[str, Any]:
            role = await client.resolve_role(args.address)
            out: Dict[str, Any] = {"address": args.address.lower(), "role": role.value}
            if args.by_institution:
                memberships = await client.roles_by_institution(args.address)
                out["institutions"] = [m.to_dict() for m in memberships.values()]
            return out

        return asyncio.run(resolve())

    def _handle_verdict(self, args: argparse.Namespace) -> Any:
        client = self.client_factory(args)
        return asyncio.run(client.get_reconciled_verdict(args.report_id)).to_dict()

    def _handle_diagnose(self, args: argparse.Namespace) -> Any:
        client = self.client_factory(args)
        params = parse_params(args.param)
        return asyncio.run(client.diagnose(args.action, params, args.caller)).to_dict()

    def _handle_execute(self, args: argparse.Namespace) -> Any:
        client = self.client_factory(args)
        params = parse_params(args.param)

        async def execute() -> Dict[str, Any]:
            handle = await client.execute(args.action, params)
            if args.wait:
                await handle.wait(timeout=args.timeout)
            return handle.to_dict()

        return asyncio.run(execute())

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        return {"path": args.path, "value": get_config_manager().get(args.path)}


def main() -> int:
    """CLI entry point."""
    cli = ReportChainCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
