"""Dependency checkers for npm projects: outdated packages, advisories and licenses."""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import Field

from ..config import CheckerDefinition
from ..deadline import Deadline
from ..errors import TerminalExecutionError, TransientExecutionError
from ..logging import get_logger
from ..models import Finding, Repository, Severity
from ..process import CommandRunner, run_command
from .base import Checker, CheckerOptions

_SECONDS_PER_DAY = 86400

_AUDIT_SEVERITIES = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "moderate": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.INFO,
}


def _parse_json(output: str, command: str) -> Dict[str, Any]:
    if not output.strip():
        return {}
    try:
        payload = json.loads(output)
    except json.JSONDecodeError as exc:
        raise TerminalExecutionError(f"{command} produced invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise TerminalExecutionError(f"{command} produced unexpected output")
    return payload


class OutdatedOptions(CheckerOptions):
    check_security_advisories: bool = True
    max_age_days: int = Field(default=180, ge=0)


class OutdatedDependenciesChecker(Checker):
    """Runs ``npm outdated`` (and optionally ``npm audit``) for projects with a package.json."""

    checker_id = "dependencies-outdated"
    options_model = OutdatedOptions

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._runner = runner or run_command
        self._clock = clock
        self.logger = get_logger("checkers.dependencies")

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: OutdatedOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        if not (root / "package.json").is_file():
            self.logger.debug("%s has no package.json; skipping npm checks", repository.name)
            return []

        findings = self._outdated(repository, definition, root, deadline)
        findings.extend(self._lockfile_age(repository, definition, root, options.max_age_days))
        if options.check_security_advisories:
            findings.extend(self._audit(repository, definition, root, deadline))
        return findings

    def _outdated(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        root: Path,
        deadline: Deadline,
    ) -> List[Finding]:
        result = self._runner(["npm", "outdated", "--json"], root, deadline)
        # npm exits with 1 when outdated packages exist
        if result.returncode not in (0, 1):
            raise TransientExecutionError(
                f"npm outdated failed ({result.returncode}): {result.stderr.strip()}"
            )
        payload = _parse_json(result.stdout, "npm outdated")
        findings: List[Finding] = []
        for name in sorted(payload):
            info = payload[name]
            if not isinstance(info, dict) or "latest" not in info:
                continue
            current = info.get("current") or "missing"
            latest = info["latest"]
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"{name} is outdated: {current} -> {latest}",
                    path="package.json",
                    package=name,
                    current=current,
                    wanted=info.get("wanted"),
                    latest=latest,
                )
            )
        return findings

    def _lockfile_age(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        root: Path,
        max_age_days: int,
    ) -> List[Finding]:
        lockfile = root / "package-lock.json"
        try:
            modified = lockfile.stat().st_mtime
        except OSError:
            return []
        age_days = int((self._clock() - modified) // _SECONDS_PER_DAY)
        if age_days <= max_age_days:
            return []
        return [
            self.finding(
                definition,
                repository,
                f"package-lock.json has not been updated in {age_days} days",
                path="package-lock.json",
                metric=age_days,
                threshold=max_age_days,
            )
        ]

    def _audit(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        root: Path,
        deadline: Deadline,
    ) -> List[Finding]:
        result = self._runner(["npm", "audit", "--json"], root, deadline)
        payload = _parse_json(result.stdout, "npm audit")
        if "error" in payload:
            error = payload["error"]
            summary = error.get("summary") if isinstance(error, dict) else error
            self.logger.warning("npm audit unavailable for %s: %s", repository.name, summary)
            return []
        if result.returncode not in (0, 1):
            raise TransientExecutionError(f"npm audit failed ({result.returncode}): {result.stderr.strip()}")
        metadata = payload.get("metadata", {})
        counts = metadata.get("vulnerabilities", {}) if isinstance(metadata, dict) else None
        if not isinstance(counts, dict):
            raise TerminalExecutionError("npm audit produced unexpected output")
        findings: List[Finding] = []
        for level, severity in _AUDIT_SEVERITIES.items():
            count = counts.get(level) or 0
            if not count:
                continue
            findings.append(
                self.finding(
                    definition,
                    repository,
                    f"npm audit reported {count} {level} severity vulnerabilit{'y' if count == 1 else 'ies'}",
                    severity=severity,
                    path="package.json",
                    metric=count,
                    advisory_level=level,
                )
            )
        return findings


class LicenseOptions(CheckerOptions):
    allowed_licenses: List[str] = Field(default_factory=list)
    forbidden_licenses: List[str] = Field(default_factory=list)


class LicenseChecker(Checker):
    """Checks declared licenses of installed npm packages against allow and deny lists."""

    checker_id = "dependencies-licenses"
    options_model = LicenseOptions

    def __init__(self) -> None:
        self.logger = get_logger("checkers.dependencies")

    def cache_token(self, repository: Repository) -> str:
        # node_modules sits outside the repository fingerprint
        modules = Path(repository.path).expanduser() / "node_modules"
        if not modules.is_dir():
            return "no-node-modules"
        digest = hashlib.sha256()
        for manifest in self._manifests(modules):
            try:
                stat_result = manifest.stat()
            except OSError:
                continue
            digest.update(manifest.relative_to(modules).as_posix().encode("utf-8"))
            digest.update(f":{stat_result.st_size}:{stat_result.st_mtime_ns}\0".encode("utf-8"))
        return digest.hexdigest()

    def run(
        self,
        repository: Repository,
        definition: CheckerDefinition,
        deadline: Deadline,
    ) -> List[Finding]:
        options: LicenseOptions = self.parse_options(definition)
        root = self.repository_root(repository)
        modules = root / "node_modules"
        if not modules.is_dir():
            return []

        allowed = {item.lower() for item in options.allowed_licenses}
        forbidden = {item.lower() for item in options.forbidden_licenses}
        findings: List[Finding] = []
        for manifest in self._manifests(modules):
            deadline.check(f"license scan of {repository.name}")
            try:
                data = json.loads(manifest.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                self.logger.warning("Unable to read %s: %s", manifest, exc)
                continue
            if not isinstance(data, dict):
                continue
            name = str(data.get("name") or manifest.parent.name)
            rel_path = manifest.relative_to(root).as_posix()
            license_id = _declared_license(data)
            if license_id is None:
                findings.append(
                    self.finding(definition, repository, f"{name} declares no license", path=rel_path, package=name)
                )
                continue
            terms = _license_terms(license_id)
            if terms & forbidden:
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        f"{name} uses forbidden license {license_id}",
                        severity=Severity.HIGH,
                        path=rel_path,
                        package=name,
                        license=license_id,
                    )
                )
            elif allowed and not terms & allowed:
                findings.append(
                    self.finding(
                        definition,
                        repository,
                        f"{name} uses license {license_id} which is not in the allowed list",
                        path=rel_path,
                        package=name,
                        license=license_id,
                    )
                )
        return findings

    @staticmethod
    def _manifests(modules: Path) -> List[Path]:
        manifests: List[Path] = []
        for entry in sorted(modules.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.name.startswith("@") and entry.is_dir():
                manifests.extend(sorted(child / "package.json" for child in entry.iterdir()))
            else:
                manifests.append(entry / "package.json")
        return [item for item in manifests if item.is_file()]


def _declared_license(data: Dict[str, Any]) -> Optional[str]:
    value = data.get("license")
    if isinstance(value, dict):
        value = value.get("type")
    if not value and isinstance(data.get("licenses"), list):
        types = [item.get("type") for item in data["licenses"] if isinstance(item, dict) and item.get("type")]
        value = " OR ".join(types)
    return str(value) if value else None


def _license_terms(expression: str) -> set:
    cleaned = expression.replace("(", " ").replace(")", " ")
    return {
        token.lower()
        for token in cleaned.split()
        if token.upper() not in {"OR", "AND", "WITH"}
    }


__all__ = ["LicenseChecker", "OutdatedDependenciesChecker"]
