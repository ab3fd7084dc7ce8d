from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterator

from cryptography import x509

from .errors import NoValidationResultsError, ValidationSummaryError
from .models import (
    STATE_CRITICAL,
    STATE_OK,
    STATE_UNKNOWN,
    STATE_WARNING,
    ServiceState,
    ValidationOptions,
)

# Baseline priorities; higher sorts first in reports.
BASELINE_PRIORITY_SANS = 1
BASELINE_PRIORITY_HOSTNAME = 2
BASELINE_PRIORITY_EXPIRATION = 3
BASELINE_PRIORITY_CHAIN_ORDER = 4
BASELINE_PRIORITY_ROOT = 5

PRIORITY_MODIFIER_MAXIMUM = 999
PRIORITY_MODIFIER_MEDIUM = 2
PRIORITY_MODIFIER_MINIMUM = 1
PRIORITY_MODIFIER_BASELINE = 0

VALIDATION_STATUS_FAILED = "failed"
VALIDATION_STATUS_IGNORED = "ignored"
VALIDATION_STATUS_SUCCESSFUL = "successful"


def service_state(result: "CheckResult | ValidationResults") -> ServiceState:
    if result.is_critical_state():
        return STATE_CRITICAL
    if result.is_warning_state():
        return STATE_WARNING
    if result.is_ok_state():
        return STATE_OK
    return STATE_UNKNOWN


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of one validation check against a certificate chain.

    ``err`` is None on success. ``ignored`` results still carry their error
    but never influence the overall state.
    """

    check_name: ClassVar[str] = ""
    baseline_priority: ClassVar[int] = 0

    chain: list[x509.Certificate]
    options: ValidationOptions = field(default_factory=ValidationOptions)
    err: Exception | None = None
    ignored: bool = False
    priority_modifier: int = PRIORITY_MODIFIER_BASELINE

    @property
    def priority(self) -> int:
        if self.ignored:
            return self.baseline_priority
        return self.baseline_priority + self.priority_modifier

    @property
    def total_certs(self) -> int:
        return len(self.chain)

    def is_warning_state(self) -> bool:
        return False

    def is_critical_state(self) -> bool:
        return self.err is not None and not self.ignored

    def is_unknown_state(self) -> bool:
        return False

    def is_ok_state(self) -> bool:
        return self.err is None or self.ignored

    def is_ignored(self) -> bool:
        return self.ignored

    def is_succeeded(self) -> bool:
        return self.is_ok_state() and not self.ignored

    def is_failed(self) -> bool:
        return self.err is not None and not self.ignored

    def service_state(self) -> ServiceState:
        return service_state(self)

    def validation_status(self) -> str:
        if self.is_failed():
            return VALIDATION_STATUS_FAILED
        if self.ignored:
            return VALIDATION_STATUS_IGNORED
        return VALIDATION_STATUS_SUCCESSFUL

    def overview(self) -> str:
        return ""

    def status(self) -> str:
        raise NotImplementedError

    def status_detail(self) -> str:
        return ""

    def report(self) -> str:
        detail = self.status_detail()
        if not detail:
            return f"{self.status()} {self.overview()}".strip()
        return f"{self.status()} {self.overview()}".strip() + "\n\n" + detail

    def __str__(self) -> str:
        return f"{self.status()} {self.overview()}".strip()


class ValidationResults:
    """
    Ordered collection of check results and the verdict derived from them.
    """

    def __init__(self, results: list[CheckResult] | None = None) -> None:
        self._results: list[CheckResult] = list(results or [])

    def __iter__(self) -> Iterator[CheckResult]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __getitem__(self, idx: int) -> CheckResult:
        return self._results[idx]

    def add(self, *results: CheckResult) -> None:
        self._results.extend(results)

    def sort(self) -> None:
        # list.sort is stable
        self._results.sort(key=lambda r: r.priority, reverse=True)

    @property
    def total(self) -> int:
        return len(self._results)

    # state

    def has_critical_state(self) -> bool:
        return any(r.is_critical_state() for r in self._results)

    def has_warning_state(self) -> bool:
        return any(r.is_warning_state() for r in self._results)

    def has_unknown_state(self) -> bool:
        return any(r.is_unknown_state() for r in self._results)

    is_critical_state = has_critical_state
    is_warning_state = has_warning_state
    is_unknown_state = has_unknown_state

    def is_ok_state(self) -> bool:
        if not self._results:
            return False
        return all(r.is_ok_state() for r in self._results)

    def has_succeeded(self) -> bool:
        return any(r.is_succeeded() for r in self._results)

    def has_ignored(self) -> bool:
        return any(r.is_ignored() for r in self._results)

    def has_failed(self) -> bool:
        return any(r.is_failed() for r in self._results)

    def service_state(self) -> ServiceState:
        return service_state(self)

    # counts

    def num_failed(self) -> int:
        return sum(1 for r in self._results if r.is_failed())

    def num_ignored(self) -> int:
        return sum(1 for r in self._results if r.is_ignored())

    def num_succeeded(self) -> int:
        return sum(1 for r in self._results if r.is_succeeded())

    def num_ok_state(self) -> int:
        return sum(1 for r in self._results if r.is_ok_state())

    def num_critical_state(self) -> int:
        return sum(1 for r in self._results if r.is_critical_state())

    def num_warning_state(self) -> int:
        return sum(1 for r in self._results if r.is_warning_state())

    # subsets

    def not_ok_results(self) -> "ValidationResults":
        return ValidationResults([r for r in self._results if not r.is_ok_state()])

    def succeeded_results(self) -> "ValidationResults":
        return ValidationResults([r for r in self._results if r.is_succeeded()])

    def not_ok_check_names(self) -> list[str]:
        return [r.check_name for r in self._results if not r.is_ok_state()]

    def ignored_check_names(self) -> list[str]:
        return [r.check_name for r in self._results if r.is_ignored()]

    def success_check_names(self) -> list[str]:
        return [r.check_name for r in self._results if r.is_succeeded()]

    # errors

    def err(self) -> Exception | None:
        if not self._results:
            return NoValidationResultsError()
        if not self.is_ok_state():
            return ValidationSummaryError(self.num_failed(), self.total)
        return None

    def errs(self, include_ignored: bool = False) -> list[Exception]:
        if not self._results:
            return [NoValidationResultsError()]
        out: list[Exception] = []
        for r in self._results:
            if r.err is None:
                continue
            if r.is_ignored() and not include_ignored:
                continue
            out.append(r.err)
        return out

    # output

    def overview(self) -> str:
        def bucket(count: int, label: str, names: list[str]) -> str:
            if count > 0:
                return f"{count} {label} ({', '.join(names)})"
            return f"{count} {label}"

        return "[checks: {}, {}, {}]".format(
            bucket(self.num_ignored(), "IGNORED", self.ignored_check_names()),
            bucket(self.num_failed(), "FAILED", self.not_ok_check_names()),
            bucket(self.num_succeeded(), "SUCCESSFUL", self.success_check_names()),
        )

    def status(self) -> str:
        """
        State label followed by the status of the highest priority result
        that explains it.
        """
        if not self._results:
            return f"{self.service_state().label}: {self.err()}"

        if not self.is_ok_state():
            subset = self.not_ok_results()
        elif self.has_ignored() and self.has_succeeded() and not self.has_failed():
            subset = self.succeeded_results()
        else:
            subset = ValidationResults(self._results)

        subset.sort()
        top = subset[0]
        return f"{subset.service_state().label}: {top.status()}"

    def one_line_summary(self) -> str:
        return f"{self.status()} {self.overview()}"

    def report(self) -> str:
        if not self._results:
            return ""

        self.sort()
        sections = [
            ("PROBLEM RESULTS:", "[!!]", lambda r: not r.is_ok_state()),
            ("IGNORED RESULTS:", "[--]", lambda r: r.is_ignored()),
            ("SUCCESS RESULTS:", "[OK]", lambda r: r.is_succeeded()),
        ]

        out = []
        for title, bullet, wanted in sections:
            out.append(f"\n\n{title}\n")
            matched = [r for r in self._results if wanted(r)]
            if not matched:
                out.append("\n* None\n")
                continue
            for r in matched:
                out.append(f"\n{bullet} {r.report().strip()}\n\n")
        return "".join(out)
