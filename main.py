#!/usr/bin/env python3
"""
HtGate: .htaccess parser and access-control evaluator
CLI Entry Point

Parses Apache-compatible .htaccess files, prints their directive tree, and
decides whether a client address may access a resource under them.

Usage:
    python main.py --config <file> [--ip 10.0.0.5] [--method GET] [--file index.php]
    python main.py --doc-root /var/www --target-dir /var/www/admin --ip 10.0.0.5
    python main.py --config-dir <directory>
"""

import argparse
import base64
import os
import sys
import logging
from datetime import datetime

from core.input_handler import InputHandler
from core.dir_walker import DirWalker
from core.models import RequestSession, EvaluationReport
from core.pipeline import run_pipeline
from core.report_generator import ReportGenerator
from parsers.htaccess_printer import HtaccessPrinter


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )


def get_project_root() -> str:
    """Get the project root directory."""
    return os.path.dirname(os.path.abspath(__file__))


def basic_authorization(user: str) -> str:
    """Authorization header value for a "user:password" pair, or None."""
    if not user:
        return None
    token = base64.b64encode(user.encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def build_session(args) -> RequestSession:
    """Request session from CLI flags; None when no client address was given."""
    if not args.ip:
        return None
    return RequestSession(
        client_ip=args.ip,
        method=args.method.upper(),
        uri=args.uri,
        filename=args.file,
        content_type=args.content_type,
        authorization=basic_authorization(args.user),
    )


def print_report(report: EvaluationReport, show_tree: bool = False):
    """Human-readable summary on stdout."""
    ci = report.config_input
    parsed = report.parsed

    print(f"\n{'='*60}")
    print(f"  [*] HtGate -- .htaccess Access Evaluator")
    print(f"{'='*60}\n")
    print(f"  [FILE]  {ci.path}")
    print(f"  [SIZE]  {ci.file_size} bytes")
    print(f"  [HASH]  SHA-256: {ci.file_hash[:32]}...")
    print(f"  [PARSE] {parsed.count()} directives, {len(parsed.diagnostics)} warnings")

    for diag in parsed.diagnostics:
        print(f"          line {diag.line}: {diag.message}")

    if show_tree:
        print(f"\n  {'-'*40}")
        for line in HtaccessPrinter(indent="  ").print(parsed.directives).splitlines():
            print(f"  {line}")
        print(f"  {'-'*40}")

    if report.decision is not None:
        session = report.session
        print(f"\n  [REQ]   {session.method} {session.uri} from {session.client_ip}"
              + (f" (file: {session.filename})" if session.filename else ""))
        status = f" ({report.decision.status})" if report.decision.status else ""
        print(f"  [ACCESS] {report.decision.verdict}{status}")
        print(f"          {report.decision.reason}")
        if report.expires_seconds is not None:
            print(f"  [CACHE] {session.response_headers.get('Cache-Control')}; "
                  f"Expires: {session.response_headers.get('Expires')}")
        if report.brute_force is not None and report.brute_force.enabled:
            bf = report.brute_force
            scope = "protected" if report.brute_force_protected else "not protected"
            if report.brute_force_whitelisted:
                scope += ", client whitelisted"
            print(f"  [BRUTE] {bf.action} after {bf.allowed_attempts} attempts "
                  f"in {bf.window_sec}s ({scope})")

    print(f"\n{'='*60}\n")


def run_evaluation(
    config_path: str = None,
    session: RequestSession = None,
    output_path: str = None,
    output_format: str = "text",
    doc_root: str = None,
    target_dir: str = None,
    modules: list = None,
    show_tree: bool = False,
) -> EvaluationReport:
    """
    Run the HtGate pipeline on one file, or on the merged .htaccess chain
    from doc_root down to target_dir.

    Args:
        config_path: Path to a single .htaccess file.
        session: Request to evaluate (None = parse only).
        output_path: Path for a json/html report.
        output_format: "text", "json" or "html".
        doc_root, target_dir: Directory walk mode instead of config_path.
        modules: Loaded module names for <IfModule> (None = all loaded).
        show_tree: Print the canonical directive tree.
    """
    logger = logging.getLogger("htgate")
    input_handler = InputHandler()

    if doc_root:
        logger.info(f"Walking {doc_root} -> {target_dir or doc_root}")
        walker = DirWalker(input_handler=input_handler)
        merged = walker.walk(doc_root, target_dir or doc_root)
        content = HtaccessPrinter().print(merged)
        if not content:
            raise ValueError(f"No .htaccess directives found between {doc_root} and {target_dir}")
        config_input = input_handler.from_text(content, path=os.path.abspath(target_dir or doc_root))
    else:
        config_input = input_handler.load_file(config_path)

    report = run_pipeline(config_input, session=session, loaded_modules=modules, logger=logger)

    if output_format == "text":
        print_report(report, show_tree=show_tree)
        return report

    if not output_path:
        os.makedirs(os.path.join(get_project_root(), "output"), exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name = config_input.filename.lstrip('.') or "htaccess"
        output_path = os.path.join(
            get_project_root(), "output", f"report_{name}_{timestamp}.{output_format}"
        )

    report_gen = ReportGenerator()
    if output_format == "json":
        report_gen.generate_json(report, output_path)
    else:
        report_gen.generate_html(report, output_path)
    print(f"  [REPORT] {output_path}")

    return report


def lint_directory(dir_path: str) -> int:
    """Parse every .htaccess below a directory; returns the number of warnings."""
    handler = InputHandler()
    inputs, errors = handler.load_directory(dir_path)
    total = 0

    for config_input in inputs:
        report = run_pipeline(config_input)
        warnings = len(report.parsed.diagnostics)
        total += warnings
        mark = "OK" if warnings == 0 else "WARN"
        print(f"  [{mark}] {config_input.path}: {report.parsed.count()} directives, {warnings} warnings")

    for err in errors:
        print(f"  [ERROR] {err['file']}: {err['error']}")

    print(f"\n  {len(inputs)} files, {total} warnings, {len(errors)} errors")
    return total


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="htgate",
        description="HtGate: .htaccess parser and access-control evaluator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --config datasets/acl_allow_deny.htaccess --tree
  python main.py --config datasets/require_nested.htaccess --ip 10.1.2.3
  python main.py --config datasets/files_limit.htaccess --ip 8.8.8.8 --method POST --file login.php
  python main.py --doc-root datasets/site --target-dir datasets/site/admin --ip 192.168.1.20
  python main.py --config-dir datasets --verbose
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--config", "-c", help="Path to the .htaccess file to evaluate")
    source.add_argument("--config-dir", help="Parse every .htaccess file below a directory")
    source.add_argument("--doc-root", help="Document root for a directory walk")

    parser.add_argument("--target-dir", default=None,
                        help="Directory under --doc-root whose merged configuration is evaluated")
    parser.add_argument("--ip", default=None, help="Client IPv4 address to evaluate")
    parser.add_argument("--method", "-m", default="GET", help="HTTP method (default: GET)")
    parser.add_argument("--uri", default="/", help="Request URI (default: /)")
    parser.add_argument("--file", default=None, help="Requested filename, for <Files>/<FilesMatch>")
    parser.add_argument("--content-type", default=None, help="Response Content-Type, for Expires")
    parser.add_argument("--user", "-u", default=None,
                        help="Basic auth credentials as user:password")
    parser.add_argument("--modules", default=None,
                        help="Comma-separated loaded modules for <IfModule> (default: all)")
    parser.add_argument("--tree", action="store_true", help="Print the canonical directive tree")
    parser.add_argument("--output", "-o", default=None,
                        help="Output file path (default: output/report_<name>_<timestamp>.<format>)")
    parser.add_argument("--format", "-f", choices=["text", "json", "html"], default="text",
                        help="Output format (default: text)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose/debug logging")

    args = parser.parse_args()

    setup_logging(args.verbose)

    modules = None
    if args.modules:
        modules = [m.strip() for m in args.modules.split(",") if m.strip()]

    try:
        if args.config_dir:
            lint_directory(args.config_dir)
            return

        run_evaluation(
            config_path=args.config,
            session=build_session(args),
            output_path=args.output,
            output_format=args.format,
            doc_root=args.doc_root,
            target_dir=args.target_dir,
            modules=modules,
            show_tree=args.tree,
        )
    except (FileNotFoundError, NotADirectoryError) as e:
        print(f"\n  [ERROR] File Error: {e}")
        sys.exit(1)
    except (ValueError, PermissionError) as e:
        print(f"\n  [ERROR] Validation Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n  [ERROR] Unexpected Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
