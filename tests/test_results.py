import datetime as dt

from tls_chain_monitor.errors import NoValidationResultsError, ValidationSummaryError
from tls_chain_monitor.models import STATE_CRITICAL, STATE_OK, STATE_UNKNOWN, STATE_WARNING, ValidationOptions
from tls_chain_monitor.results import ValidationResults
from tls_chain_monitor.validators import (
    validate_chain_order,
    validate_expiration,
    validate_hostname,
    validate_root,
    validate_sans_list,
)


def _results(chain, server="www.example.test", options=None):
    options = options or ValidationOptions()
    results = ValidationResults()
    results.add(
        validate_expiration(chain, 15, 30, options=options),
        validate_hostname(chain, server, "", options),
        validate_chain_order(chain, options=options),
        validate_root(chain, options=options),
    )
    results.sort()
    return results


def test_empty_results_are_unknown():
    results = ValidationResults()

    assert results.service_state() == STATE_UNKNOWN
    assert isinstance(results.err(), NoValidationResultsError)
    assert results.status().startswith("UNKNOWN:")
    assert results.report() == ""


def test_summary_error_text():
    assert str(ValidationSummaryError(2, 5)) == "summary: 2 of 5 validation checks failed"


def test_root_in_chain_gives_warning(chain):
    results = _results(chain)

    assert results.service_state() == STATE_WARNING
    assert results.num_failed() == 1
    assert results.status().startswith("WARNING: Root validation failed")
    assert isinstance(results.err(), ValidationSummaryError)
    assert len(results.errs()) == 1


def test_all_ok_without_root(chain):
    results = _results(chain[:2])

    assert results.service_state() == STATE_OK
    assert results.err() is None
    assert results.errs() == []
    assert results.status().startswith("OK: ")
    assert results.overview() == (
        "[checks: 0 IGNORED, 0 FAILED, "
        "4 SUCCESSFUL (Root, Chain Order, Expiration, Hostname)]"
    )


def test_sort_by_priority(chain):
    opts = ValidationOptions(ignore_validation_result_root=True)
    results = _results(chain, server="other.test", options=opts)
    names = [r.check_name for r in results]

    assert names == ["Root", "Chain Order", "Expiration", "Hostname"]
    assert [r.priority for r in results] == [5, 4, 3, 3]
    assert results.service_state() == STATE_CRITICAL
    assert results.status().startswith("CRITICAL: Hostname validation")


def test_critical_outranks_warning(chain_factory, now):
    chain = chain_factory(leaf_not_after=now - dt.timedelta(days=1))
    results = _results(chain)

    assert results[0].check_name == "Expiration"
    assert results.service_state() == STATE_CRITICAL
    assert results.status().startswith("CRITICAL: Expiration validation failed")


def test_ignored_results_reported_separately(chain):
    opts = ValidationOptions(ignore_validation_result_root=True)
    results = _results(chain, options=opts)

    assert results.service_state() == STATE_OK
    assert results.ignored_check_names() == ["Root"]
    assert "1 IGNORED (Root)" in results.overview()
    # The status explains the successful checks rather than the ignored one.
    assert not results.status().startswith("OK: Root")

    report = results.report()
    assert report.index("PROBLEM RESULTS:") < report.index("IGNORED RESULTS:") < report.index("SUCCESS RESULTS:")
    assert "\n* None\n" in report
    assert "[--] Root validation ignored" in report


def test_errs_with_ignored(chain):
    opts = ValidationOptions(ignore_validation_result_root=True)
    results = _results(chain, options=opts)

    assert results.errs() == []
    assert len(results.errs(include_ignored=True)) == 1


def test_sans_results_in_report(chain):
    results = ValidationResults([validate_sans_list(chain, ["www.example.test", "c.test"])])
    report = results.report()

    assert "[!!] SANs List validation failed" in report
    assert "missing: [c.test], unexpected: [example.test]" in report
