import pytest

from tls_chain_monitor.config import (
    APP_TYPE_COPIER,
    APP_TYPE_INSPECTOR,
    APP_TYPE_PLUGIN,
    APP_TYPE_SCANNER,
    Config,
    find_config_file,
    load_file_defaults,
)
from tls_chain_monitor.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_plugin_defaults():
    cfg = Config.from_args(APP_TYPE_PLUGIN, ["--server", "www.example.test"])

    assert cfg.port == 443
    assert cfg.age_warning == 30
    assert cfg.age_critical == 15
    assert cfg.timeout == 10
    assert cfg.cert_types_to_keep == ["all"]
    assert cfg.log_level == "info"


@pytest.mark.parametrize(
    "app, argv, text",
    [
        (APP_TYPE_PLUGIN, [], "one of server or input filename"),
        (APP_TYPE_PLUGIN, ["-s", "a.test", "--filename", "chain.pem"], "one of server or input filename"),
        (APP_TYPE_COPIER, ["--filename", "chain.pem"], "output filename must be specified"),
        (APP_TYPE_PLUGIN, ["-s", "a.test", "-c", "40", "-w", "30"], "greater than warning age"),
        (APP_TYPE_PLUGIN, ["-s", "a.test", "--port", "70000"], "invalid port 70000"),
        (APP_TYPE_PLUGIN, ["-s", "a.test", "--ignore-validation-result", "bogus"], "invalid validation keyword"),
        (
            APP_TYPE_PLUGIN,
            ["-s", "a.test", "--ignore-validation-result", "root", "--apply-validation-result", "ROOT"],
            "both ignored and applied",
        ),
        (APP_TYPE_COPIER, ["--filename", "c.pem", "-o", "out.pem", "--cert-types-to-keep", "all,leaf"], "cannot be combined"),
        (APP_TYPE_COPIER, ["--filename", "c.pem", "-o", "out.pem", "--cert-types-to-keep", "bundle"], "invalid cert type"),
        (APP_TYPE_PLUGIN, ["-s", "a.test", "--log-level", "loud"], "invalid log level"),
        (APP_TYPE_SCANNER, [], "one or more hosts"),
        (APP_TYPE_SCANNER, ["--hosts", "192.0.2.1", "--app-timeout", "1"], "app timeout"),
        (APP_TYPE_SCANNER, ["--hosts", "192.0.2.1", "--ports", "443,http"], "invalid port 'http'"),
        (APP_TYPE_SCANNER, ["--hosts", "192.0.2.1", "--scan-rate-limit", "0"], "scan rate limit 0"),
    ],
)
def test_invalid_configs(app, argv, text):
    with pytest.raises(ConfigError, match=text):
        Config.from_args(app, argv)


def test_copier_config():
    cfg = Config.from_args(
        APP_TYPE_COPIER,
        ["--filename", "chain.pem", "-o", "out.pem", "--cert-types-to-keep", "leaf, intermediate"],
    )
    assert cfg.output_filename == "out.pem"
    assert cfg.cert_types_to_keep == ["leaf", "intermediate"]


def test_scanner_hosts_and_ports():
    cfg = Config.from_args(
        APP_TYPE_SCANNER,
        ["--hosts", "192.0.2.1,10.0.0.0/30", "--ips", "www.example.test", "--ports", "443", "--ports", "8443,636"],
    )

    assert cfg.hosts == ["192.0.2.1", "10.0.0.0/30", "www.example.test"]
    assert cfg.ports == [443, 8443, 636]
    assert cfg.cert_scan_limit() == cfg.scan_rate_limit == 100


def test_scanner_cert_scan_limit():
    cfg = Config.from_args(APP_TYPE_SCANNER, ["--hosts", "192.0.2.1", "--cert-scan-rate-limit", "5"])
    assert cfg.cert_scan_limit() == 5
    assert cfg.ports == [443]


def test_hostname_applied_only_with_server_or_dns_name():
    by_file = Config.from_args(APP_TYPE_INSPECTOR, ["--filename", "chain.pem"])
    assert not by_file.apply_hostname()
    assert by_file.validation_options().ignore_validation_result_hostname

    by_file_with_name = Config.from_args(APP_TYPE_INSPECTOR, ["--filename", "chain.pem", "--dns-name", "a.test"])
    assert by_file_with_name.apply_hostname()

    by_server = Config.from_args(APP_TYPE_PLUGIN, ["--server", "a.test"])
    assert by_server.apply_hostname()


def test_sans_checks():
    cfg = Config.from_args(APP_TYPE_PLUGIN, ["-s", "a.test", "--sans-entries", "a.test,b.test"])
    assert cfg.sans_entries == ["a.test", "b.test"]
    assert cfg.apply_sans()

    skipped = Config.from_args(APP_TYPE_PLUGIN, ["-s", "a.test", "--sans-entries", "skipsanschecks"])
    assert skipped.skip_sans_checks()
    assert not skipped.apply_sans()

    none = Config.from_args(APP_TYPE_PLUGIN, ["-s", "a.test"])
    assert not none.apply_sans()


def test_ignore_and_apply_keywords():
    cfg = Config.from_args(
        APP_TYPE_PLUGIN,
        [
            "-s", "a.test",
            "--ignore-validation-result", "Root,expiration",
            "--ignore-expiring-intermediate-certs",
            "--ignore-hostname-verification-if-empty-sans",
        ],
    )
    opts = cfg.validation_options()

    assert opts.ignore_validation_result_root
    assert opts.ignore_validation_result_expiration
    assert not opts.ignore_validation_result_chain_order
    assert not opts.ignore_validation_result_hostname
    assert opts.ignore_expiring_intermediate_certs
    assert not opts.ignore_expired_root_certs
    assert opts.ignore_hostname_verification_if_empty_sans


def test_toml_defaults(isolated_cwd):
    path = isolated_cwd / "monitor.toml"
    path.write_text(
        'server = "www.example.test"\n'
        "age-warning = 45\n"
        'sans_entries = ["www.example.test", "example.test"]\n'
    )

    cfg = Config.from_args(APP_TYPE_PLUGIN, ["--config", str(path), "-c", "20"])

    assert cfg.server == "www.example.test"
    assert cfg.age_warning == 45
    assert cfg.age_critical == 20
    assert cfg.sans_entries == ["www.example.test", "example.test"]
    assert cfg.config_file == str(path)


def test_flags_override_toml_defaults(isolated_cwd):
    path = isolated_cwd / "monitor.toml"
    path.write_text("age_warning = 45\n")

    cfg = Config.from_args(APP_TYPE_PLUGIN, ["--config", str(path), "-s", "a.test", "-w", "60"])
    assert cfg.age_warning == 60


def test_toml_unknown_key(isolated_cwd):
    path = isolated_cwd / "monitor.toml"
    path.write_text("colour = true\n")

    with pytest.raises(ConfigError, match="unknown configuration keys: colour"):
        Config.from_args(APP_TYPE_PLUGIN, ["--config", str(path), "-s", "a.test"])


def test_toml_parse_error(isolated_cwd):
    path = isolated_cwd / "monitor.toml"
    path.write_text("server = \n")

    with pytest.raises(ConfigError, match="failed to load"):
        load_file_defaults(str(path))


def test_find_config_file(isolated_cwd):
    assert find_config_file(str(isolated_cwd)) == ""

    (isolated_cwd / "pyproject.toml").write_text('[project]\nname = "other"\n')
    assert find_config_file(str(isolated_cwd)) == ""

    (isolated_cwd / "pyproject.toml").write_text('[tool.tls-chain-monitor]\nport = 8443\n')
    assert find_config_file(str(isolated_cwd)).endswith("pyproject.toml")
    assert load_file_defaults(None) == {"port": 8443}

    (isolated_cwd / ".tls-chain-monitor.toml").write_text("port = 636\n")
    assert find_config_file(str(isolated_cwd)).endswith(".tls-chain-monitor.toml")
