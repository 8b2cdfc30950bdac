#!/usr/bin/env python3
"""
poe: proof-of-existence ledger CLI

Command-line access to a claim ledger kept in a local snapshot file. Each
mutating command loads the snapshot, dispatches one call through the runtime
as the given caller, and saves the snapshot if the call succeeded.

Usage:
    poe [--state PATH] [--config PATH] [--format FMT] <command> [options]

Commands:
    digest      Fingerprint a file
    create      Register a claim
    revoke      Revoke an owned claim
    transfer    Transfer an owned claim to another account
    show        Show the record of a claim
    list        List registered claims
    block       Show or advance the block height
    config      Configuration management

Exit status: 0 on success, 1 when the ledger rejected the call,
2 on invalid input (bad hex, unreadable file, corrupt snapshot, bad config).

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from poe import __version__
from poe.canonical import claim_hex, file_digest, parse_claim
from poe.clock import BlockClock
from poe.config import ConfigError, get_config, get_config_manager
from poe.identity import Origin, SignedOriginProvider
from poe.observability import LedgerLayer, configure_logging, get_logger
from poe.runtime import Call, ClaimRuntime
from poe.store import LedgerState, SnapshotError, load_state, save_state

logger = get_logger("cli", LedgerLayer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 2):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class PoeCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="poe",
            description="Proof-of-existence claim ledger",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"poe {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--state", "-s", help="Snapshot file (default: ledger.state_path)")
        self.parser.add_argument("--config", "-c", help="YAML configuration file")

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    # ------------------------------------------------------------------
    # Parser setup
    # ------------------------------------------------------------------

    @staticmethod
    def _add_claim_source(parser: argparse.ArgumentParser) -> None:
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument("--claim", help="Claim as hex (0x prefix optional)")
        source.add_argument("--file", help="Fingerprint this file and use the digest as the claim")

    def _register_commands(self) -> None:
        digest = self.subparsers.add_parser("digest", help="Fingerprint a file")
        digest.add_argument("path", help="File to fingerprint")
        digest.add_argument("--algorithm", "-a", help="Digest algorithm (default: digest.algorithm)")

        create = self.subparsers.add_parser("create", help="Register a claim")
        create.add_argument("--caller", required=True, help="Signing account")
        self._add_claim_source(create)
        create.add_argument("--advance-block", action="store_true", help="Finalize the block afterwards")

        revoke = self.subparsers.add_parser("revoke", help="Revoke an owned claim")
        revoke.add_argument("--caller", required=True, help="Signing account")
        self._add_claim_source(revoke)
        revoke.add_argument("--advance-block", action="store_true", help="Finalize the block afterwards")

        transfer = self.subparsers.add_parser("transfer", help="Transfer an owned claim")
        transfer.add_argument("--caller", required=True, help="Signing account")
        transfer.add_argument("--receiver", required=True, help="Receiving account")
        self._add_claim_source(transfer)
        transfer.add_argument("--advance-block", action="store_true", help="Finalize the block afterwards")

        show = self.subparsers.add_parser("show", help="Show the record of a claim")
        self._add_claim_source(show)

        list_cmd = self.subparsers.add_parser("list", help="List registered claims")
        list_cmd.add_argument("--owner", help="Only claims owned by this account")

        block = self.subparsers.add_parser("block", help="Show or advance the block height")
        block.add_argument("--advance", type=int, metavar="N", help="Finalize N blocks")

        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")
        config_sub.add_parser("show", help="Show effective configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., digest.algorithm)")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._load_config(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if isinstance(result, dict) and result.get("success") is False:
                return 1
            return 0

        except CLIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (SnapshotError, ConfigError, ValueError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    def _load_config(self, args: argparse.Namespace) -> None:
        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        else:
            mgr.load_defaults()
        configure_logging()

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name.replace("-", "_"), None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip())

        return handler(args)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _state_path(self, args: argparse.Namespace) -> pathlib.Path:
        return pathlib.Path(args.state or get_config().ledger.state_path.get())

    def _algorithm(self, args: argparse.Namespace) -> str:
        return getattr(args, "algorithm", None) or get_config().digest.algorithm.get()

    def _claim(self, args: argparse.Namespace) -> bytes:
        if args.file:
            path = pathlib.Path(args.file)
            if not path.is_file():
                raise CLIError(f"File not found: {path}")
            return file_digest(path, self._algorithm(args))
        return parse_claim(args.claim)

    def _runtime(self, args: argparse.Namespace) -> ClaimRuntime:
        state = load_state(self._state_path(args))
        return ClaimRuntime(
            SignedOriginProvider(),
            BlockClock(state.block_number),
            records=state.records,
            history_limit=get_config().events.history_limit.get(),
        )

    def _submit(self, args: argparse.Namespace, call: Call) -> Dict[str, Any]:
        runtime = self._runtime(args)
        result = runtime.dispatch(Origin.signed(args.caller), call)
        if result.success:
            if args.advance_block:
                runtime.finalize_block()
            state_root = save_state(self._state_path(args), runtime.registry, runtime.clock)
        else:
            state_root = runtime.registry.state_root()
        out = result.to_dict()
        out["state_root"] = state_root
        return out

    @staticmethod
    def _record_dict(claim: bytes, state: LedgerState) -> Dict[str, Any]:
        for key, record in state.records:
            if key == claim:
                return {"claim": claim_hex(claim), "claimed": True, **record.to_dict()}
        return {"claim": claim_hex(claim), "claimed": False}

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_digest(self, args: argparse.Namespace) -> Any:
        path = pathlib.Path(args.path)
        if not path.is_file():
            raise CLIError(f"File not found: {path}")
        algorithm = self._algorithm(args)
        return {"path": str(path), "algorithm": algorithm, "claim": claim_hex(file_digest(path, algorithm))}

    def _handle_create(self, args: argparse.Namespace) -> Any:
        return self._submit(args, Call.create(self._claim(args)))

    def _handle_revoke(self, args: argparse.Namespace) -> Any:
        return self._submit(args, Call.revoke(self._claim(args)))

    def _handle_transfer(self, args: argparse.Namespace) -> Any:
        return self._submit(args, Call.transfer(self._claim(args), args.receiver))

    def _handle_show(self, args: argparse.Namespace) -> Any:
        claim = self._claim(args)
        state = load_state(self._state_path(args))
        return self._record_dict(claim, state)

    def _handle_list(self, args: argparse.Namespace) -> Any:
        state = load_state(self._state_path(args))
        claims = [
            {"claim": claim_hex(claim), **record.to_dict()}
            for claim, record in state.records
            if args.owner is None or record.owner == args.owner
        ]
        return {
            "block_number": state.block_number,
            "state_root": state.state_root,
            "count": len(claims),
            "claims": claims,
        }

    def _handle_block(self, args: argparse.Namespace) -> Any:
        path = self._state_path(args)
        state = load_state(path)
        if not args.advance:
            return {"block_number": state.block_number}
        if args.advance < 0:
            raise CLIError("--advance must be non-negative")
        registry, clock = state.restore()
        clock.advance(args.advance)
        save_state(path, registry, clock)
        logger.info("Blocks finalized", operation="block", count=args.advance, block_number=clock.now())
        return {"block_number": clock.now()}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config().to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        return {"valid": not errors, "success": not errors, "errors": errors}

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        return {"path": args.path, "value": get_config_manager().get(args.path)}

    def _handle_config(self, args: argparse.Namespace) -> Any:
        return self._handle_config_show(args)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = PoeCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
