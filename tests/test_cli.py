import datetime as dt

import pytest

from tls_chain_monitor import certs, cli
from tls_chain_monitor.discovery import DiscoveryResult
from tls_chain_monitor.models import DiscoveredChain


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def chain_file(tmp_path):
    def write(chain, extra=b""):
        path = tmp_path / "chain.pem"
        path.write_bytes(certs.to_pem(chain) + extra)
        return str(path)

    return write


def test_check_cert_ok(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain[:2])])
    out = capsys.readouterr().out

    assert code == 0
    assert out.startswith("OK: ")
    assert "**DETAILED INFO**" in out
    assert "**ERRORS**" not in out


def test_check_cert_root_warning(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain)])
    out = capsys.readouterr().out

    assert code == 1
    assert out.startswith("WARNING: Root validation failed")
    assert "**ERRORS**" in out


def test_check_cert_root_ignored(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain), "--ignore-validation-result", "root"])
    assert code == 0
    assert "**ERRORS**" not in capsys.readouterr().out


def test_check_cert_expired_leaf(chain_factory, chain_file, now, capsys):
    chain = chain_factory(leaf_not_after=now - dt.timedelta(days=1))
    code = cli.check_cert_main(["--filename", chain_file(chain[:2])])
    out = capsys.readouterr().out

    assert code == 2
    assert out.startswith("CRITICAL: Expiration validation failed")
    assert "expired" in out.splitlines()[0]


def test_check_cert_sans_mismatch(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain[:2]), "--sans-entries", "www.example.test,c.test"])
    out = capsys.readouterr().out

    assert code == 2
    assert "missing: [c.test], unexpected: [example.test]" in out


def test_check_cert_skip_sans_checks(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain[:2]), "--sans-entries", "SKIPSANSCHECKS"])
    out = capsys.readouterr().out

    assert code == 0
    assert "2 IGNORED (Hostname, SANs List)" in out


def test_check_cert_leftovers_warning(chain, chain_file, capsys):
    code = cli.check_cert_main(["--filename", chain_file(chain[:2], b"unexpected trailer\n")])
    out = capsys.readouterr().out

    assert code == 1
    assert out.startswith("WARNING: Unknown data encountered while parsing certificates file")
    assert "unexpected trailer" in out


def test_check_cert_emit_text(chain, chain_file, capsys):
    cli.check_cert_main(["--filename", chain_file(chain[:2]), "--text"])
    assert capsys.readouterr().out.count("-----BEGIN CERTIFICATE-----") == 2


def test_check_cert_missing_file(tmp_path, capsys):
    code = cli.check_cert_main(["--filename", str(tmp_path / "missing.pem")])

    assert code == 3
    assert capsys.readouterr().out.startswith("UNKNOWN: Error parsing certificates file")


def test_check_cert_config_error(capsys):
    code = cli.check_cert_main([])

    assert code == 3
    assert capsys.readouterr().out.startswith("UNKNOWN: Error initializing application")


def test_check_cert_fetch_error(monkeypatch, capsys):
    def fail(host_val, ip_addr, port, timeout):
        raise cli.CertCheckError(f"{ip_addr}:{port}", detail="connection refused")

    monkeypatch.setattr(cli, "get_certs", fail)
    code = cli.check_cert_main(["--server", "192.0.2.1"])

    assert code == 2
    assert capsys.readouterr().out.startswith("CRITICAL: Error retrieving certificates from 192.0.2.1")


def test_check_cert_server(monkeypatch, chain, capsys):
    calls = []

    def fetch(host_val, ip_addr, port, timeout):
        calls.append((host_val, ip_addr, port))
        return chain[:2]

    monkeypatch.setattr(cli, "get_certs", fetch)
    code = cli.check_cert_main(["--server", "192.0.2.1", "--dns-name", "www.example.test", "--port", "8443"])

    assert code == 0
    assert calls == [("www.example.test", "192.0.2.1", 8443)]
    assert 'Hostname validation using value "www.example.test" successful' in capsys.readouterr().out


def test_resolve_server_rejects_ranges():
    cfg = cli.Config(app="plugin", server="10.0.0.0/30")
    with pytest.raises(cli.ConfigError):
        cli.resolve_server(cfg)


def test_resolve_server_descriptions():
    cfg = cli.Config(app="plugin", server="192.0.2.1", port=443)
    assert cli.resolve_server(cfg) == ("", "192.0.2.1", "service running on 192.0.2.1 at port 443")

    cfg = cli.Config(app="plugin", server="192.0.2.1", dns_name="www.example.test", port=443)
    host_val, ip, description = cli.resolve_server(cfg)
    assert (host_val, ip) == ("www.example.test", "192.0.2.1")
    assert description.endswith('using host value "www.example.test"')


def test_lscert(chain, chain_file, capsys):
    path = chain_file(chain)
    code = cli.lscert_main(["--filename", path])
    out = capsys.readouterr().out

    assert code == 0
    assert f"OK: 3 certs found in {path}" in out
    assert "CERTIFICATES | AGE THRESHOLDS: WARNING: 30d, CRITICAL: 15d" in out
    assert "Certificate 3 of 3 (root):" in out
    assert "VALIDATION CHECKS" in out
    assert "[!!] Root validation failed" in out


def test_copycert_filters_leaf(chain, chain_file, tmp_path, capsys):
    out_path = tmp_path / "leaf.pem"
    code = cli.copycert_main(["--filename", chain_file(chain), "-o", str(out_path), "--cert-types-to-keep", "leaf"])
    out = capsys.readouterr().out

    assert code == 0
    assert "OK: Input certificate chain filtered as requested." in out
    assert f"OK: Wrote 1 certs to {out_path}" in out
    parsed, _ = certs.parse_cert_file(out_path)
    assert parsed == chain[:1]


def test_copycert_keeps_all(chain, chain_file, tmp_path, capsys):
    out_path = tmp_path / "all.pem"
    code = cli.copycert_main(["--filename", chain_file(chain), "-o", str(out_path)])

    assert code == 0
    assert "OK: Retaining input certificate chain as-is:" in capsys.readouterr().out
    assert certs.parse_cert_file(out_path)[0] == chain


def test_copycert_everything_excluded(chain, chain_file, tmp_path, capsys):
    out_path = tmp_path / "none.pem"
    code = cli.copycert_main(
        ["--filename", chain_file(chain[:2]), "-o", str(out_path), "--cert-types-to-keep", "root"]
    )

    assert code == 1
    assert "all certificates in input chain excluded" in capsys.readouterr().err
    assert not out_path.exists()


def test_filter_chain(chain):
    assert cli.filter_chain(chain, ["intermediate", "root"]) == chain[1:]
    assert cli.filter_chain(chain, ["all"]) == chain


def _fake_discovery(chains, timed_out=False):
    def run_discovery(hosts, ports, **kwargs):
        assert [hp.given for hp in hosts] == ["192.0.2.1"]
        assert ports == [443]
        return DiscoveryResult(chains=chains, timed_out=timed_out, elapsed=0.5)

    return run_discovery


def test_certsum_reports_problems(chain_factory, monkeypatch, capsys):
    chain = chain_factory(leaf_days=5)
    discovered = [DiscoveredChain(name="", ip_address="192.0.2.1", port=443, certs=chain)]
    monkeypatch.setattr(cli, "run_discovery", _fake_discovery(discovered))

    code = cli.certsum_main(["--hosts", "192.0.2.1"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Beginning cert scan against 1 IPs expanded from 1 unique host patterns using ports: [443]" in out
    assert "Completed certificates scan in 0.500s" in out
    assert "1 certificate chains (1 issues) found." in out
    assert "Results (issues only):" in out
    assert "www.example.test" in out


def test_certsum_overview_without_issues(chain, monkeypatch, capsys):
    discovered = [DiscoveredChain(name="", ip_address="192.0.2.1", port=443, certs=chain)]
    monkeypatch.setattr(cli, "run_discovery", _fake_discovery(discovered))

    code = cli.certsum_main(["--hosts", "192.0.2.1", "--show-overview"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Results: No certificate issues found!" in out


def test_certsum_timeout(monkeypatch, capsys):
    monkeypatch.setattr(cli, "run_discovery", _fake_discovery([], timed_out=True))

    code = cli.certsum_main(["--hosts", "192.0.2.1"])

    assert code == 1
    assert "aborted after 0.500s due to application timeout" in capsys.readouterr().out


def test_certsum_bad_host_pattern(capsys):
    code = cli.certsum_main(["--hosts", "192.0.2.10-5"])

    assert code == 1
    assert "unrecognized IP range" in capsys.readouterr().err


def test_check_cert_appends_perfdata(chain, chain_file, capsys):
    cli.check_cert_main(["--filename", chain_file(chain[:2]), "-w", "40", "-c", "20"])
    first_line = capsys.readouterr().out.splitlines()[0]

    summary, perfdata = first_line.split(" | ")
    assert summary.startswith("OK: ")
    metrics = perfdata.split()
    assert metrics[0].startswith("expires_leaf=119d;40;20")
    assert "certs_present_leaf=1;;;;" in metrics
    assert "certs_present_root=0;;;;" in metrics
    assert [m.split("=")[0] for m in metrics][-2:] == ["life_remaining_leaf", "life_remaining_intermediate"]
