#!/usr/bin/env python3
"""
provenact command line

Usage:
    python -m provenact <command> [options]

Commands:
    evaluate          Evaluate one capability against a policy
    verify-receipt    Verify an execution receipt's content hash
    verify-snapshot   Verify a registry snapshot's content hash
    hash              Compute the content hash of a document
    validate          Validate a document against a named schema
    conformance       Run the conformance suite over a test-vector tree
    config            Show or validate the effective configuration
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from provenact import __version__
from provenact.config import ProvenactConfig, load_config
from provenact.conformance import ConformanceFailure, run_conformance
from provenact.core import ProvenactError, load_document
from provenact.models import Capability, ExecutionReceipt, Manifest, Policy, RegistrySnapshot
from provenact.observability import LogLayer, configure_logging, get_logger
from provenact.policy import evaluate_capability
from provenact.receipts import (
    check_receipt,
    check_snapshot,
    compute_manifest_hash,
    compute_policy_hash,
    compute_receipt_hash,
    compute_snapshot_hash,
)
from provenact.schema import SCHEMA_NAMES, SchemaStore

logger = get_logger("main", LogLayer.CLI)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = EXIT_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class ProvenactCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="provenact",
            description="Capability policy evaluation and receipt verification",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"provenact {__version__}",
        )
        self.parser.add_argument(
            "--output", "-o",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--config", "-c", help="YAML configuration file")
        self.parser.add_argument("--log-level", help="Override observability.log_level")
        self.parser.add_argument("--log-format", choices=["json", "text"], help="Override observability.log_format")
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages on stderr",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()
        self.config: ProvenactConfig = ProvenactConfig()

    def _register_commands(self) -> None:
        evaluate = self.subparsers.add_parser("evaluate", help="Evaluate one capability against a policy")
        evaluate.add_argument("--policy", "-p", required=True, help="Policy document (JSON/YAML)")
        evaluate.add_argument("--kind", "-k", required=True, help="Capability kind, e.g. fs.read")
        evaluate.add_argument("--value", "-v", required=True, help="Requested resource")

        receipt = self.subparsers.add_parser("verify-receipt", help="Verify an execution receipt")
        receipt.add_argument("file", help="Receipt document")

        snapshot = self.subparsers.add_parser("verify-snapshot", help="Verify a registry snapshot")
        snapshot.add_argument("file", help="Snapshot document")

        hash_cmd = self.subparsers.add_parser("hash", help="Compute a document's content hash")
        hash_cmd.add_argument("kind", choices=["receipt", "snapshot", "manifest", "policy"])
        hash_cmd.add_argument("file", help="Document to hash")

        validate = self.subparsers.add_parser("validate", help="Validate a document against a schema")
        validate.add_argument("schema", choices=list(SCHEMA_NAMES))
        validate.add_argument("file", help="Document to validate")

        conformance = self.subparsers.add_parser("conformance", help="Run the conformance suite")
        conformance.add_argument("root", nargs="?", help="Test-vector root (default: conformance.vectors_root)")
        conformance.add_argument(
            "--keep-going",
            action="store_true",
            help="Collect all failures instead of stopping at the first",
        )

        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")
        config_sub.add_parser("show", help="Show the effective configuration")
        config_sub.add_parser("validate", help="Validate the effective configuration")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI and return its exit code."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        try:
            self.config = load_config(parsed.config)
            if parsed.log_level:
                self.config.set("observability.log_level", parsed.log_level)
            if parsed.log_format:
                self.config.set("observability.log_format", parsed.log_format)
            try:
                configure_logging(
                    self.config.get("observability.log_level"),
                    self.config.get("observability.log_format"),
                )
            except ValueError as e:
                raise CLIError(f"invalid logging configuration: {e}") from e

            fmt = OutputFormat(parsed.output)
            exit_code, result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (ProvenactError, OSError) as e:
            logger.error("command failed", error_code=type(e).__name__, command=parsed.command)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}")

        return handler(args)

    def _store(self) -> SchemaStore:
        return SchemaStore.load(self.config.schema_root())

    # Evaluation
    def _handle_evaluate(self, args: argparse.Namespace) -> Any:
        policy = Policy.from_dict(load_document(pathlib.Path(args.policy), "policy"))
        capability = Capability(kind=args.kind, value=args.value)
        allowed = evaluate_capability(policy, capability)
        result = {"kind": capability.kind, "value": capability.value, "decision": "allow" if allowed else "deny"}
        return (EXIT_OK if allowed else EXIT_REJECTED), result

    # Verification
    def _handle_verify_receipt(self, args: argparse.Namespace) -> Any:
        receipt = ExecutionReceipt.from_dict(load_document(pathlib.Path(args.file), "execution receipt"))
        result = check_receipt(receipt)
        verify_logger = get_logger("receipt", LogLayer.VERIFY)
        verify_logger.info("receipt checked", operation="verify-receipt", file=args.file, status=result.status.value)
        return (EXIT_OK if result.is_valid else EXIT_REJECTED), result.to_dict()

    def _handle_verify_snapshot(self, args: argparse.Namespace) -> Any:
        snapshot = RegistrySnapshot.from_dict(load_document(pathlib.Path(args.file), "registry snapshot"))
        result = check_snapshot(snapshot)
        verify_logger = get_logger("snapshot", LogLayer.VERIFY)
        verify_logger.info("snapshot checked", operation="verify-snapshot", file=args.file, status=result.status.value)
        return (EXIT_OK if result.is_valid else EXIT_REJECTED), result.to_dict()

    def _handle_hash(self, args: argparse.Namespace) -> Any:
        doc = load_document(pathlib.Path(args.file), args.kind)
        if args.kind == "receipt":
            digest = compute_receipt_hash(ExecutionReceipt.from_dict(doc))
        elif args.kind == "snapshot":
            digest = compute_snapshot_hash(RegistrySnapshot.from_dict(doc))
        elif args.kind == "manifest":
            digest = compute_manifest_hash(Manifest.from_dict(doc))
        else:
            digest = compute_policy_hash(Policy.from_dict(doc))
        return EXIT_OK, {"kind": args.kind, "digest": digest}

    # Schema validation
    def _handle_validate(self, args: argparse.Namespace) -> Any:
        store = self._store()
        value = load_document(pathlib.Path(args.file))
        errors = store.errors(args.schema, value)
        result: Dict[str, Any] = {"schema": args.schema, "valid": not errors}
        if errors:
            result["errors"] = errors
        return (EXIT_REJECTED if errors else EXIT_OK), result

    # Conformance
    def _handle_conformance(self, args: argparse.Namespace) -> Any:
        root = pathlib.Path(args.root or self.config.get("conformance.vectors_root"))
        if not root.is_dir():
            raise CLIError(f"vector root not found: {root}")
        strict = self.config.get("conformance.strict") and not args.keep_going
        try:
            report = run_conformance(root, self._store(), strict=strict)
        except ConformanceFailure as e:
            return EXIT_REJECTED, {"root": str(root), "passed": False, "failures": [{"file": e.file, "message": e.message}]}
        return (EXIT_OK if report.passed else EXIT_REJECTED), report.to_dict()

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return EXIT_OK, self.config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = self.config.validate()
        return (EXIT_REJECTED if errors else EXIT_OK), {"valid": not errors, "errors": errors}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = ProvenactCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
