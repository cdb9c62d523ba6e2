#!/usr/bin/env python3
"""
token_topup_report.py

Version: 1.0.0

What this app does
------------------
Reads two JSON datasets (users and companies), joins every active user to the
company it belongs to, applies that company's token top-up to the user's balance,
and writes a plain-text report grouped by company:

1) One block per company that has at least one active user:
   - users who will be emailed about the top-up
   - users who will not be emailed
   - the total amount of top-ups for the company

2) A one-line summary printed to the console.

Which users qualify
-------------------
- A user is topped up only when active_status is true AND company_id matches a
  loaded company.
- A user is emailed only when BOTH the company and the user have email_status true.
- Records with a missing or wrong-typed field are dropped without any message.
  "Wrong-typed" is strict: "true" (a string) or 1 are not booleans, and true is
  not a number.

Install
-------
Python 3.10+ recommended. Standard library only.

Typical usage
-------------
python token_topup_report.py
python token_topup_report.py --users users.json --companies companies.json --out output.txt
python token_topup_report.py --config config.topup.json --log-level DEBUG

Config file (optional)
----------------------
{
  "io": {
    "users": "data/users.json",
    "companies": "data/companies.json",
    "output": "output.txt",
    "encoding": "utf-8-sig"
  }
}
Relative paths are resolved against the config file's directory. Command-line
flags win over the config file.
"""

from __future__ import annotations

import argparse
import codecs
import enum
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


APP_NAME = "token_topup_report"
APP_VERSION = "1.0.0"

LOG = logging.getLogger(APP_NAME)

DEFAULT_USERS_FILE = "users.json"
DEFAULT_COMPANIES_FILE = "companies.json"
DEFAULT_OUTPUT_FILE = "output.txt"
DEFAULT_ENCODING = "utf-8-sig"

Number = Union[int, float]


# -----------------------------
# Errors
# -----------------------------
class TopUpError(Exception):
    """Base class for errors that abort the whole run."""


class SourceUnavailable(TopUpError):
    """An input file cannot be located, opened or read."""


class MalformedSource(TopUpError):
    """An input file was read but is not a JSON array of records."""


class ConfigError(TopUpError):
    """The config file is missing, unparseable or has wrong-typed values."""


class ReportWriteError(TopUpError):
    """The output artifact could not be written."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class Company:
    """A company row that passed validation."""
    id: Number
    name: str
    top_up: Number
    email_status: bool


@dataclass(frozen=True)
class User:
    """A user row that passed validation."""
    id: Number
    first_name: str
    last_name: str
    email: str
    company_id: Number
    email_status: bool
    active_status: bool
    tokens: Number


@dataclass(frozen=True)
class ProcessedUser:
    """A qualifying user after the top-up has been applied."""
    last_name: str
    first_name: str
    email: str
    previous_balance: Number
    new_balance: Number
    top_up_amount: Number


@dataclass
class CompanyGroup:
    """Per-company aggregation unit used for both grouping and reporting."""
    company: Company
    users_emailed: List[ProcessedUser] = field(default_factory=list)
    users_not_emailed: List[ProcessedUser] = field(default_factory=list)

    @property
    def user_count(self) -> int:
        return len(self.users_emailed) + len(self.users_not_emailed)

    @property
    def total_top_up(self) -> Number:
        return sum(u.top_up_amount for u in self.users_emailed + self.users_not_emailed)


@dataclass(frozen=True)
class RunConfig:
    """Where to read inputs from and where to write the report."""
    users_path: Path = Path(DEFAULT_USERS_FILE)
    companies_path: Path = Path(DEFAULT_COMPANIES_FILE)
    output_path: Path = Path(DEFAULT_OUTPUT_FILE)
    encoding: str = DEFAULT_ENCODING


# -----------------------------
# Validation
# -----------------------------
class RecordKind(enum.Enum):
    COMPANY = "company"
    USER = "user"


@dataclass(frozen=True)
class Valid:
    record: Union[Company, User]


@dataclass(frozen=True)
class InvalidRecord:
    """A record that failed field-level validation. Returned, never raised."""
    reason: str


ValidationResult = Union[Valid, InvalidRecord]


def _is_number(value: Any) -> bool:
    # bool subclasses int; JSON true/false must not pass as a number.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_bool(value: Any) -> bool:
    return value is True or value is False


def _is_text(value: Any) -> bool:
    return isinstance(value, str)


def _first_bad_field(raw: Dict[str, Any], checks: Dict[str, Any]) -> Optional[str]:
    """Return a reason for the first field that is missing or fails its check, else None."""
    for name, check in checks.items():
        if name not in raw:
            return f"missing field {name!r}"
        if not check(raw[name]):
            return f"field {name!r} has invalid value {raw[name]!r}"
    return None


_COMPANY_CHECKS = {
    "id": _is_number,
    "name": lambda v: _is_text(v) and v != "",
    "top_up": _is_number,
    "email_status": _is_bool,
}

_USER_CHECKS = {
    "id": _is_number,
    "first_name": _is_text,
    "last_name": _is_text,
    "email": _is_text,
    "company_id": _is_number,
    "email_status": _is_bool,
    "active_status": _is_bool,
    "tokens": _is_number,
}


def validate_company(raw: Any) -> ValidationResult:
    """Classify a raw record as a Company or an InvalidRecord."""
    if not isinstance(raw, dict):
        return InvalidRecord(f"expected an object, got {type(raw).__name__}")
    reason = _first_bad_field(raw, _COMPANY_CHECKS)
    if reason:
        return InvalidRecord(reason)
    return Valid(
        Company(
            id=raw["id"],
            name=raw["name"],
            top_up=raw["top_up"],
            email_status=raw["email_status"],
        )
    )


def validate_user(raw: Any) -> ValidationResult:
    """Classify a raw record as a User or an InvalidRecord."""
    if not isinstance(raw, dict):
        return InvalidRecord(f"expected an object, got {type(raw).__name__}")
    reason = _first_bad_field(raw, _USER_CHECKS)
    if reason:
        return InvalidRecord(reason)
    return Valid(
        User(
            id=raw["id"],
            first_name=raw["first_name"],
            last_name=raw["last_name"],
            email=raw["email"],
            company_id=raw["company_id"],
            email_status=raw["email_status"],
            active_status=raw["active_status"],
            tokens=raw["tokens"],
        )
    )


_VALIDATORS = {
    RecordKind.COMPANY: validate_company,
    RecordKind.USER: validate_user,
}


def validate_record(raw: Any, kind: RecordKind) -> ValidationResult:
    """Validate one raw record as the given kind."""
    return _VALIDATORS[kind](raw)


# -----------------------------
# Input reading
# -----------------------------
def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def read_records(path: Path, encoding: str = DEFAULT_ENCODING) -> List[Any]:
    """
    Read a JSON file whose top level is an array of records.

    Raises SourceUnavailable when the file cannot be opened or read, and
    MalformedSource when its content is not a JSON array. NaN/Infinity are
    rejected since they are not part of JSON proper.
    """
    path = Path(path)
    if not path.exists():
        raise SourceUnavailable(f"File not found: {path}")

    try:
        text = path.read_text(encoding=encoding)
    except UnicodeDecodeError as e:
        raise MalformedSource(f"Could not decode {path} as {encoding}: {e}") from e
    except OSError as e:
        raise SourceUnavailable(f"Could not read {path}: {e}") from e

    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        raise MalformedSource(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise MalformedSource(f"Expected a JSON array in {path}, got {type(data).__name__}")
    return data


RecordSource = Union[str, os.PathLike, Iterable[Any]]


def _records_from(source: RecordSource, encoding: str) -> Iterable[Any]:
    if isinstance(source, (str, os.PathLike)):
        return read_records(Path(source), encoding)
    return source


def load_companies(source: RecordSource, encoding: str = DEFAULT_ENCODING) -> Dict[Number, Company]:
    """Load valid companies keyed by id. Later records win on id collision."""
    companies: Dict[Number, Company] = {}
    for raw in _records_from(source, encoding):
        result = validate_record(raw, RecordKind.COMPANY)
        if isinstance(result, InvalidRecord):
            continue
        companies[result.record.id] = result.record
    return companies


def load_users(source: RecordSource, encoding: str = DEFAULT_ENCODING) -> List[User]:
    """Load valid users, keeping source order."""
    users: List[User] = []
    for raw in _records_from(source, encoding):
        result = validate_record(raw, RecordKind.USER)
        if isinstance(result, Valid):
            users.append(result.record)
    return users


# -----------------------------
# Join + aggregate
# -----------------------------
def build_groups(companies: Dict[Number, Company], users: Iterable[User]) -> Dict[Number, CompanyGroup]:
    """
    Join active users to their companies and apply the company top-up.

    Inactive users and users whose company_id is not in `companies` are skipped.
    Lists keep the iteration order of `users`; final ordering is left to render().
    """
    groups: Dict[Number, CompanyGroup] = {}

    for user in users:
        if not user.active_status:
            continue

        company = companies.get(user.company_id)
        if company is None:
            continue

        group = groups.get(company.id)
        if group is None:
            group = groups[company.id] = CompanyGroup(company=company)

        processed = ProcessedUser(
            last_name=user.last_name,
            first_name=user.first_name,
            email=user.email,
            previous_balance=user.tokens,
            new_balance=user.tokens + company.top_up,
            top_up_amount=company.top_up,
        )

        if company.email_status and user.email_status:
            group.users_emailed.append(processed)
        else:
            group.users_not_emailed.append(processed)

    return groups


def summarize(groups: Dict[Number, CompanyGroup]) -> Dict[str, Any]:
    """Totals across all groups, for the console summary."""
    emailed = sum(len(g.users_emailed) for g in groups.values())
    not_emailed = sum(len(g.users_not_emailed) for g in groups.values())
    return {
        "company_count": len(groups),
        "user_count": sum(g.user_count for g in groups.values()),
        "emailed_count": emailed,
        "not_emailed_count": not_emailed,
        "total_top_up": sum(g.total_top_up for g in groups.values()),
    }


# -----------------------------
# Rendering
# -----------------------------
def _by_last_name(users: List[ProcessedUser]) -> List[ProcessedUser]:
    # sorted() is stable and compares str by code point.
    return sorted(users, key=lambda u: u.last_name)


def _user_lines(user: ProcessedUser) -> List[str]:
    return [
        f"\t\t{user.last_name}, {user.first_name}, {user.email}",
        f"\t\t  Previous Token Balance, {user.previous_balance}",
        f"\t\t  New Token Balance {user.new_balance}",
    ]


def render(groups: Dict[Number, CompanyGroup]) -> str:
    """Render the report text. Output depends only on the content of `groups`."""
    lines: List[str] = [""]

    for group in sorted(groups.values(), key=lambda g: g.company.id):
        company = group.company

        lines.append(f"\tCompany Id: {company.id}")
        lines.append(f"\tCompany Name: {company.name}")

        lines.append("\tUsers Emailed:")
        for user in _by_last_name(group.users_emailed):
            lines.extend(_user_lines(user))

        lines.append("\tUsers Not Emailed:")
        if not group.users_not_emailed:
            lines.append("")
        for user in _by_last_name(group.users_not_emailed):
            lines.extend(_user_lines(user))

        lines.append(f"\t\tTotal amount of top ups for {company.name}: {group.total_top_up}")
        lines.append("")

    return "\n".join(lines) + "\n"


def write_report(text: str, out_path: Path, encoding: str = "utf-8") -> None:
    """Write the rendered report in one go; the handle is closed on every path."""
    out_path = Path(out_path)
    try:
        with out_path.open("w", encoding=encoding, newline="") as f:
            f.write(text)
    except OSError as e:
        raise ReportWriteError(f"Could not write {out_path}: {e}") from e


# -----------------------------
# Pipeline
# -----------------------------
def build_report(config: RunConfig) -> Tuple[str, Dict[str, Any]]:
    """Load both sources, group, and render. Returns (report_text, summary)."""
    companies_raw = read_records(config.companies_path, config.encoding)
    users_raw = read_records(config.users_path, config.encoding)

    companies = load_companies(companies_raw)
    users = load_users(users_raw)

    LOG.info("Loaded %d companies from %s", len(companies), config.companies_path)
    LOG.info("Loaded %d users from %s", len(users), config.users_path)
    LOG.debug(
        "Records not loaded (invalid or overwritten): companies=%d users=%d",
        len(companies_raw) - len(companies),
        len(users_raw) - len(users),
    )

    groups = build_groups(companies, users)
    return render(groups), summarize(groups)


def run_pipeline(config: RunConfig) -> str:
    """Produce the report text for `config` without touching the output path."""
    text, _ = build_report(config)
    return text


# -----------------------------
# Config helpers
# -----------------------------
def _get(d: Dict[str, Any], key: str, default: Any) -> Any:
    """Fetch an optional config key."""
    return d.get(key, default)


def _config_path(io_cfg: Dict[str, Any], key: str, base_dir: Path) -> Optional[Path]:
    value = _get(io_cfg, key, None)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"Config io.{key} must be a non-empty string, got {value!r}")
    p = Path(value)
    return p if p.is_absolute() else base_dir / p


def _check_encoding(encoding: str, origin: str) -> str:
    try:
        codecs.lookup(encoding)
    except LookupError as e:
        raise ConfigError(f"Unknown encoding {encoding!r} from {origin}") from e
    return encoding


def load_config(path: Path) -> Dict[str, Any]:
    """
    Read the optional config file and return the io settings it provides,
    as a dict with any of: users_path, companies_path, output_path, encoding.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    try:
        cfg = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not load config {path}: {e}") from e

    if not isinstance(cfg, dict):
        raise ConfigError(f"Config {path} must be a JSON object")
    io_cfg = _get(cfg, "io", {})
    if not isinstance(io_cfg, dict):
        raise ConfigError("Config key 'io' must be an object")

    base_dir = path.parent
    out: Dict[str, Any] = {}
    for key, attr in (("users", "users_path"), ("companies", "companies_path"), ("output", "output_path")):
        p = _config_path(io_cfg, key, base_dir)
        if p is not None:
            out[attr] = p

    encoding = _get(io_cfg, "encoding", None)
    if encoding is not None:
        if not isinstance(encoding, str) or not encoding:
            raise ConfigError(f"Config io.encoding must be a non-empty string, got {encoding!r}")
        out["encoding"] = _check_encoding(encoding, "config io.encoding")
    return out


def resolve_config(args: argparse.Namespace) -> RunConfig:
    """CLI flag > config file > default."""
    settings: Dict[str, Any] = load_config(Path(args.config)) if args.config else {}

    if args.users:
        settings["users_path"] = Path(args.users)
    if args.companies:
        settings["companies_path"] = Path(args.companies)
    if args.out:
        settings["output_path"] = Path(args.out)
    if args.encoding:
        settings["encoding"] = _check_encoding(args.encoding, "--encoding")

    return RunConfig(**settings)


# -----------------------------
# CLI
# -----------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """CLI argument parsing."""
    p = argparse.ArgumentParser(prog=APP_NAME)
    p.add_argument("--users", default="", help=f"Path to users JSON (default: {DEFAULT_USERS_FILE}).")
    p.add_argument("--companies", default="", help=f"Path to companies JSON (default: {DEFAULT_COMPANIES_FILE}).")
    p.add_argument("--out", default="", help=f"Path to output text report (default: {DEFAULT_OUTPUT_FILE}).")
    p.add_argument("--encoding", default="", help=f"Input encoding (default: {DEFAULT_ENCODING}).")
    p.add_argument("--config", default="", help="Optional: path to config JSON.")
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARN, ERROR")
    p.add_argument(
        "--debug",
        action="store_true",
        default=bool(os.environ.get("DEBUG")),
        help="Include tracebacks in error output (also enabled by the DEBUG env var).",
    )
    return p.parse_args(argv)


def configure_logging(level: str) -> None:
    """Configure console logging."""
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format="%(levelname)s %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    print(f"{APP_NAME} v{APP_VERSION}")

    try:
        config = resolve_config(args)
        LOG.info("Using users:     %s", str(config.users_path.resolve()))
        LOG.info("Using companies: %s", str(config.companies_path.resolve()))

        text, summ = build_report(config)
        write_report(text, config.output_path)
        LOG.info("Wrote report: %s", config.output_path)
    except TopUpError as e:
        LOG.error("Error: %s", e, exc_info=args.debug)
        return 1

    print(f"Successfully generated {config.output_path}")
    print(
        f"Companies: {summ['company_count']} | "
        f"Users: {summ['user_count']} | "
        f"Emailed: {summ['emailed_count']} | "
        f"Not emailed: {summ['not_emailed_count']} | "
        f"Total top ups: {summ['total_top_up']}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
