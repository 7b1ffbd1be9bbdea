#!/usr/bin/env python3
"""
Controller Endpoint Lens v1.0
=============================
Static analysis of ASP.NET / Web API controller source: recovers every HTTP
endpoint (verb, composed route, parameter binding sources) without a
compiler, and synthesizes realistic sample requests for them.

Features:
  - Attribute-routed and conventional controllers, multiple per file
  - Binding inference from one explicit, versioned rule table
  - Request bodies built from DTOs declared in the same document
  - Named target environments (base URL, base path, default headers)
  - Fingerprint-keyed cache of per-file parse results
  - Rich console tables and JSON export

Usage: python main.py [OPTIONS] <path | file.cs | git-url>
"""

import sys
import os
import json
import argparse
import tempfile
import shutil
import logging
from pathlib import Path
from typing import List, Dict, Any, Set, Optional, Callable
from dataclasses import dataclass, field
from datetime import datetime

import git
import yaml
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.table import Table

from cache import DocumentCache
from parsing import EndpointDescriptor, ParseResult, HTTP_METHODS, TypeCatalog
from synthesis import (Environment, InvalidEnvironmentError, RequestSynthesizer,
                       load_environments)

# =============================================================================
# VERSION
# =============================================================================
__version__ = "1.0.0"

console = Console()

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
CONSOLE_LOG_LEVEL = logging.WARNING
FILE_LOG_LEVEL = logging.DEBUG


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record, message text properly escaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_level: str = "WARNING", log_file: Optional[str] = None) -> logging.Logger:
    """Route `endpoint_lens.*` records to stderr via rich and, optionally, a JSON-lines file."""
    logger = logging.getLogger("endpoint_lens")
    logger.setLevel(getattr(logging, log_level.upper(), logging.WARNING))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(console=Console(stderr=True), show_path=False)
    console_handler.setLevel(CONSOLE_LOG_LEVEL)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(FILE_LOG_LEVEL)
        file_handler.setFormatter(JsonLinesFormatter())
        logger.addHandler(file_handler)

    return logger

logger = logging.getLogger("endpoint_lens.cli")

# =============================================================================
# CONFIGURATION SYSTEM
# =============================================================================
DEFAULT_IGNORE_DIRS: Set[str] = {
    # Version control
    ".git", ".svn", ".hg",
    # .NET build output and tooling
    "bin", "obj", ".vs", "packages", "TestResults", "artifacts",
    # Frontend assets often vendored next to controllers
    "node_modules", "wwwroot",
    # IDE/OS
    ".vscode", ".idea", ".DS_Store",
}


class ConfigError(Exception):
    """A configuration file could not be read or contains unknown settings."""


@dataclass
class AnalyzerConfig:
    """
    Analyzer configuration with sensible defaults.
    Can be loaded from environment variables, config file, or CLI args.
    """
    ignore_dirs: Set[str] = field(default_factory=set)
    max_file_size_mb: int = 10
    cache_size: int = 256

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    # Request synthesis
    environments_file: Optional[str] = None
    environment: Optional[str] = None

    def __post_init__(self):
        """Apply default ignore dirs if not set."""
        if not self.ignore_dirs:
            self.ignore_dirs = DEFAULT_IGNORE_DIRS.copy()

    @classmethod
    def from_env(cls) -> "AnalyzerConfig":
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()
        ignore = os.getenv("ENDPOINT_LENS_IGNORE_DIRS")
        try:
            return cls(
                ignore_dirs={d.strip() for d in ignore.split(",") if d.strip()} if ignore else set(),
                max_file_size_mb=int(os.getenv("ENDPOINT_LENS_MAX_FILE_SIZE", 10)),
                cache_size=int(os.getenv("ENDPOINT_LENS_CACHE_SIZE", 256)),
                log_level=os.getenv("ENDPOINT_LENS_LOG_LEVEL", "WARNING"),
                log_file=os.getenv("ENDPOINT_LENS_LOG_FILE"),
                environments_file=os.getenv("ENDPOINT_LENS_ENVIRONMENTS"),
                environment=os.getenv("ENDPOINT_LENS_ENV"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid ENDPOINT_LENS_* setting: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> "AnalyzerConfig":
        """Load configuration from JSON or YAML file."""
        try:
            with open(path, 'r') as f:
                if path.endswith(('.yaml', '.yml')):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        # Convert ignore_dirs list to set if present
        if 'ignore_dirs' in data and isinstance(data['ignore_dirs'], list):
            data['ignore_dirs'] = set(data['ignore_dirs'])

        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"Unknown setting in {path}: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "cache_size": self.cache_size,
            "log_level": self.log_level,
            "environments_file": self.environments_file,
            "environment": self.environment,
        }

# =============================================================================
# ANALYZER
# =============================================================================
@dataclass
class FileReport:
    """Parse result for one source file."""
    path: str
    result: ParseResult


class EndpointAnalyzer:
    """
    Walks a target (single file or directory) and parses every C# file.

    Features:
    - Error isolation per file
    - Size limit and ignored directories from AnalyzerConfig
    - Parse results reused through DocumentCache while a file is unchanged
    """

    EXTENSIONS = {".cs"}

    def __init__(self, target_path: str, config: Optional[AnalyzerConfig] = None,
                 cache: Optional[DocumentCache] = None):
        self.target = Path(target_path)
        self.config = config or AnalyzerConfig()
        self.cache = cache or DocumentCache(max_entries=self.config.cache_size)
        self.reports: List[FileReport] = []
        self.stats = {
            "files_analyzed": 0,
            "files_skipped": 0,
            "files_errored": 0,
        }

    def should_ignore(self, path: Path) -> bool:
        """Check if path should be ignored."""
        return any(part in self.config.ignore_dirs for part in path.parts)

    def _collect_files(self) -> List[Path]:
        """Collect all analyzable files."""
        if self.target.is_file():
            return [self.target]

        all_files = []
        for root, dirs, files in os.walk(self.target):
            # Modify dirs in-place to skip ignored directories
            dirs[:] = sorted(d for d in dirs if d not in self.config.ignore_dirs)

            for f in sorted(files):
                fp = Path(root) / f
                if fp.suffix.lower() in self.EXTENSIONS and not self.should_ignore(fp.relative_to(self.target)):
                    all_files.append(fp)
                else:
                    self.stats["files_skipped"] += 1
        return all_files

    def _analyze_single_file(self, fp: Path) -> Optional[ParseResult]:
        """Parse a single file with error isolation."""
        try:
            file_size_mb = fp.stat().st_size / (1024 * 1024)
            if file_size_mb > self.config.max_file_size_mb:
                logger.warning(f"Skipping large file {fp}: {file_size_mb:.1f}MB > {self.config.max_file_size_mb}MB")
                self.stats["files_skipped"] += 1
                return None

            with open(fp, 'r', encoding='utf-8-sig', errors='ignore') as f:
                content = f.read()

            return self.cache.get_or_parse(str(fp), content)

        except (IOError, UnicodeDecodeError) as e:
            logger.debug(f"File read error {fp}: {e}")
            self.stats["files_errored"] += 1
            return None

    def analyze(self, progress_cb: Optional[Callable[[int, int, Path], None]] = None) -> List[FileReport]:
        self.reports = []
        all_files = self._collect_files()

        for i, fp in enumerate(all_files):
            if progress_cb:
                progress_cb(i + 1, len(all_files), fp)
            result = self._analyze_single_file(fp)
            if result is None:
                continue
            self.stats["files_analyzed"] += 1
            self.reports.append(FileReport(path=self._display_path(fp), result=result))

        return self.reports

    def endpoints(self, method: Optional[str] = None) -> List[tuple]:
        """(report, endpoint) pairs, optionally filtered by HTTP verb."""
        pairs = []
        for report in self.reports:
            for ep in report.result.endpoints:
                if method is None or ep.http_method == method.upper():
                    pairs.append((report, ep))
        return pairs

    def project_catalog(self) -> TypeCatalog:
        """Every type declared across the analyzed files."""
        return TypeCatalog(t for r in self.reports for t in r.result.catalog.types())

    def summary(self) -> Dict[str, Any]:
        by_method: Dict[str, int] = {}
        for _, ep in self.endpoints():
            by_method[ep.http_method] = by_method.get(ep.http_method, 0) + 1
        warnings_by_kind: Dict[str, int] = {}
        for report in self.reports:
            for w in report.result.warnings:
                warnings_by_kind[w.kind.value] = warnings_by_kind.get(w.kind.value, 0) + 1
        return {
            **self.stats,
            "controllers": sum(len(r.result.controllers) for r in self.reports),
            "endpoints": sum(len(r.result.endpoints) for r in self.reports),
            "types": sum(len(r.result.catalog) for r in self.reports),
            "by_method": by_method,
            "warnings": warnings_by_kind,
        }

    def _display_path(self, fp: Path) -> str:
        if self.target.is_file():
            return fp.name
        return str(fp.relative_to(self.target))

# =============================================================================
# OUTPUT FORMATTERS
# =============================================================================
METHOD_COLORS = {
    "GET": "green", "POST": "yellow", "PUT": "blue", "PATCH": "cyan",
    "DELETE": "red", "HEAD": "dim", "OPTIONS": "dim",
}

def fmt_method(m: str) -> str:
    color = METHOD_COLORS.get(m, "white")
    return f"[{color}]{m}[/{color}]"

def fmt_params(ep: EndpointDescriptor) -> str:
    parts = []
    for p in ep.parameters:
        mark = "" if p.required else "?"
        parts.append(f"{p.name}{mark}:{p.binding_source.value}")
    return ", ".join(parts)

def make_table(pairs: List[tuple]) -> Table:
    t = Table(title=" Discovered Endpoints", box=box.ROUNDED, header_style="bold magenta")
    t.add_column("#", style="dim", width=4)
    t.add_column("Method", width=8)
    t.add_column("Route", max_width=40)
    t.add_column("Action", style="cyan", max_width=32)
    t.add_column("Parameters", max_width=40)
    t.add_column("Auth", width=6)
    t.add_column("File:Line", style="dim", max_width=30)

    for i, (report, ep) in enumerate(pairs[:200], 1):
        route = ep.route_template[:37] + "..." if len(ep.route_template) > 40 else ep.route_template
        if ep.has_route_mismatch:
            route = f"[yellow]{route}[/yellow]"
        t.add_row(
            str(i), fmt_method(ep.http_method), route,
            f"{ep.controller_name}.{ep.method_name}", fmt_params(ep),
            "[green]yes[/green]" if ep.auth_required else "[dim]no[/dim]",
            f"{Path(report.path).name}:{ep.source_location.line}",
        )

    if len(pairs) > 200:
        t.add_row("...", "", f"... +{len(pairs) - 200} more", "", "", "", "")

    return t

def make_warning_table(reports: List[FileReport]) -> Table:
    t = Table(title=" Warnings", box=box.ROUNDED, header_style="bold yellow")
    t.add_column("Kind", style="yellow", width=24)
    t.add_column("Message", max_width=70)
    t.add_column("File:Line", style="dim", max_width=30)
    for report in reports:
        for w in report.result.warnings:
            line = w.location.line if w.location else "-"
            t.add_row(w.kind.value, w.message, f"{Path(report.path).name}:{line}")
    return t

def make_summary(s: Dict[str, Any]) -> Panel:
    txt = f"""
[bold cyan] Analysis Summary[/bold cyan]

[bold]Endpoints:[/bold] {s['endpoints']} in {s['controllers']} controllers ({s['types']} types)
[bold]Files Analyzed:[/bold] {s['files_analyzed']} | Skipped: {s['files_skipped']} | Errors: {s['files_errored']}

[bold cyan]By Method:[/bold cyan]
""" + "\n".join([f"   {m}: {c}" for m, c in sorted(s['by_method'].items())])

    if s['warnings']:
        txt += "\n\n[bold yellow]Warnings:[/bold yellow]\n" + "\n".join(
            [f"   {k}: {v}" for k, v in sorted(s['warnings'].items())]
        )

    return Panel(txt, title=" Results", border_style="cyan")

def build_output(analyzer: EndpointAnalyzer, target: str, pairs: List[tuple],
                 requests: Optional[Dict[int, Dict[str, Any]]] = None) -> Dict[str, Any]:
    """JSON document written by -o/--output."""
    endpoints = []
    for i, (report, ep) in enumerate(pairs):
        data = {"file": report.path, **ep.to_dict()}
        if requests is not None and i in requests:
            data["request"] = requests[i]
        endpoints.append(data)
    return {
        "timestamp": datetime.now().isoformat(),
        "target": target,
        "version": __version__,
        "summary": analyzer.summary(),
        "files": [
            {
                "path": r.path,
                "fingerprint": r.result.fingerprint,
                "controllers": [c.to_dict() for c in r.result.controllers],
                "types": [t.to_dict() for t in r.result.catalog.types()],
                "warnings": [w.to_dict() for w in r.result.warnings],
            }
            for r in analyzer.reports
        ],
        "endpoints": endpoints,
    }

def generate_requests(pairs: List[tuple], environment: Optional[Environment],
                      project: Optional[TypeCatalog] = None) -> Dict[int, Dict[str, Any]]:
    """
    Synthesize one sample request per endpoint, keyed by position in `pairs`.

    Types missing from an endpoint's own file are looked up in `project`.
    """
    synthesizers: Dict[str, RequestSynthesizer] = {}
    requests = {}
    for i, (report, ep) in enumerate(pairs):
        synthesizer = synthesizers.get(report.path)
        if synthesizer is None:
            synthesizer = synthesizers[report.path] = RequestSynthesizer(
                TypeCatalog(report.result.catalog.types(), fallback=project))
        requests[i] = synthesizer.synthesize(ep, environment).to_dict()
    return requests

# =============================================================================
# GIT HELPER
# =============================================================================
def clone_repo(url: str) -> str:
    tmp = tempfile.mkdtemp(prefix="endpoint_lens_")
    console.print(f"[cyan]Cloning: {url}[/cyan]")
    git.Repo.clone_from(url, tmp, depth=1)
    console.print(f"[green] Cloned[/green]")
    return tmp

# =============================================================================
# MAIN CLI
# =============================================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"Controller Endpoint Lens v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py ./src                                  # Analyze every controller
  python main.py Controllers/UsersController.cs         # Single file
  python main.py ./src --method GET --show-warnings     # Filter and show warnings
  python main.py ./src --generate -o endpoints.json     # Include sample requests
  python main.py ./src --generate --environments envs.yaml --env Staging
        """
    )

    # Target
    parser.add_argument("target", help="C# file, directory or Git URL to analyze")

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument("-o", "--output", help="Output JSON file")
    output_group.add_argument("--show-warnings", action="store_true",
                              help="List every parse warning")
    output_group.add_argument("--method", choices=HTTP_METHODS, type=str.upper,
                              help="Only report endpoints with this HTTP verb")

    # Synthesis options
    synth_group = parser.add_argument_group("Request Synthesis")
    synth_group.add_argument("--generate", action="store_true",
                             help="Synthesize a sample request for every endpoint")
    synth_group.add_argument("--environments", metavar="FILE",
                             help="Environments file (JSON/YAML)")
    synth_group.add_argument("--env", metavar="NAME",
                             help="Environment to build URLs against")

    # General
    parser.add_argument("--config", metavar="FILE", help="Configuration file (JSON/YAML)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    tmp = None

    try:
        config = AnalyzerConfig.from_file(args.config) if args.config else AnalyzerConfig.from_env()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    setup_logging("DEBUG" if args.verbose else config.log_level, config.log_file)

    # Banner
    if not args.quiet:
        console.print(Panel.fit(
            f"[bold cyan] Controller Endpoint Lens v{__version__}[/bold cyan]\n"
            "[dim]ASP.NET Core | Web API 2 | Sample request synthesis[/dim]",
            border_style="cyan"
        ))

    target = args.target
    try:
        environment = None
        if args.generate:
            env_set = load_environments(args.environments or config.environments_file)
            environment = env_set.get(args.env or config.environment)

        # Clone if URL
        if target.startswith(("http://", "https://", "git@")):
            tmp = clone_repo(target)
            target = tmp
        elif not os.path.exists(target):
            console.print(f"[red]Error: {target} not found[/red]")
            return 1

        analyzer = EndpointAnalyzer(target, config)

        def progress_cb(cur, tot, fp):
            prog.update(task, completed=(cur / tot) * 100,
                        description=f"[cyan]{Path(fp).name[:25]}")

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      BarColumn(), TextColumn("{task.percentage:>3.0f}%"),
                      console=console, disable=args.quiet) as prog:
            task = prog.add_task("[cyan]Analyzing", total=100)
            analyzer.analyze(progress_cb=progress_cb)

        pairs = analyzer.endpoints(args.method)
        requests = generate_requests(pairs, environment, analyzer.project_catalog()) if args.generate else None

        if not args.quiet:
            console.print(f"\n[green] Found {len(pairs)} endpoints[/green]")
            console.print(make_summary(analyzer.summary()))
            if pairs:
                console.print(make_table(pairs))
            if args.show_warnings and any(r.result.warnings for r in analyzer.reports):
                console.print(make_warning_table(analyzer.reports))
            if requests:
                console.print(f"[cyan] Synthesized {len(requests)} requests"
                              f"{f' for {environment.name}' if environment else ''}[/cyan]")

        if args.output:
            data = build_output(analyzer, args.target, pairs, requests)
            with open(args.output, 'w') as f:
                json.dump(data, f, indent=2)
            if not args.quiet:
                console.print(f"\n[green] Saved: {args.output}[/green]")

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    except (ConfigError, InvalidEnvironmentError, OSError, git.GitCommandError) as e:
        console.print(f"\n[red]Error: {e}[/red]")
        if args.verbose:
            console.print_exception()
        return 1
    finally:
        if tmp and os.path.exists(tmp):
            shutil.rmtree(tmp, ignore_errors=True)

    if not args.quiet:
        console.print("\n[bold green] Complete![/bold green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
