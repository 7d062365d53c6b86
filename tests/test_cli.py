"""Tests for the remus-netbuf-setup command line."""

import logging
import logging.handlers

import pytest

from conftest import claim_path
from netbuf.cli import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, build_parser, configure_logging, main
from netbuf.config import LoggingConfig, LogLevel
from netbuf.hotplug import NetbufHotplug


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo the handlers configure_logging installs on the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def env(monkeypatch, lock_dir):
    monkeypatch.setenv("NETBUF_LOCK_DIR", lock_dir)
    monkeypatch.setenv("NETBUF_LOCK_TIMEOUT", "5")


def test_parser_reads_environment(monkeypatch):
    monkeypatch.setenv("vifname", "vif3.0")
    monkeypatch.setenv("XENBUS_PATH", "/libxl/3/remus/netbuf/0")
    monkeypatch.setenv("IFB", "ifb2")

    args = build_parser().parse_args(["teardown"])

    assert (args.vifname, args.xenbus_path, args.ifb) == ("vif3.0", "/libxl/3/remus/netbuf/0", "ifb2")


def test_options_win_over_environment(monkeypatch):
    monkeypatch.setenv("vifname", "vif3.0")

    args = build_parser().parse_args(["setup", "--vifname", "vif9.0"])

    assert args.vifname == "vif9.0"


def test_invalid_command(hotplug, kernel):
    assert main(["restart"], hotplug=hotplug) == EXIT_USAGE
    assert kernel.calls == []


def test_missing_vifname_is_usage_error(env, hotplug, store, kernel, monkeypatch):
    monkeypatch.setenv("XENBUS_PATH", claim_path(3))

    assert main(["setup"], hotplug=hotplug) == EXIT_USAGE
    assert store.data == {}
    assert kernel.calls == []


def test_setup_success(env, hotplug, store, monkeypatch):
    monkeypatch.setenv("vifname", "vif3.0")
    monkeypatch.setenv("XENBUS_PATH", claim_path(3))

    assert main(["setup"], hotplug=hotplug) == EXIT_OK
    assert store.read(claim_path(3) + "/ifb") == "ifb0"


def test_setup_exhaustion_exits_non_zero(env, hotplug, kernel, store):
    kernel.plugged.update({"ifb0": None, "ifb1": None})

    code = main(["setup", "--vifname", "vif3.0", "--xenbus-path", claim_path(3)],
                hotplug=hotplug)

    assert code == EXIT_FAILURE
    assert store.read(claim_path(3) + "/ifb") is None


def test_teardown_failures_exit_zero(env, hotplug, kernel):
    kernel.fail("del_ingress")
    kernel.fail("link_down")

    code = main(["teardown", "--vifname", "vif3.0", "--xenbus-path", claim_path(3),
                 "--ifb", "ifb0"], hotplug=hotplug)

    assert code == EXIT_OK


def test_teardown_requires_ifb(env, hotplug):
    code = main(["teardown", "--vifname", "vif3.0", "--xenbus-path", claim_path(3)],
                hotplug=hotplug)

    assert code == EXIT_USAGE


def test_bad_config_file_exits_non_zero(tmp_path, hotplug):
    path = tmp_path / "netbuf.yaml"
    path.write_text("pool: {unknown: 1}\n")

    assert main(["setup", "--config", str(path)], hotplug=hotplug) == EXIT_FAILURE


def test_builds_hotplug_from_config(env, monkeypatch, store, kernel):
    """Test main wires a NetbufHotplug from the loaded configuration."""
    built = {}

    def fake_init(self, config=None, **kwargs):
        built["config"] = config
        original_init(self, config, store=store, kernel=kernel)

    original_init = NetbufHotplug.__init__
    monkeypatch.setattr(NetbufHotplug, "__init__", fake_init)
    monkeypatch.setenv("NETBUF_CHECK_ENVIRONMENT", "false")

    code = main(["setup", "--vifname", "vif3.0", "--xenbus-path", claim_path(3)])

    assert code == EXIT_OK
    assert built['config'].command.check_environment is False
    assert ("check_environment",) not in kernel.calls


def test_configure_logging_with_file(tmp_path):
    log_file = tmp_path / "netbuf.log"
    cfg = LoggingConfig(level=LogLevel.WARNING, file_path=str(log_file))

    configure_logging(cfg, "debug")
    logging.getLogger("netbuf.test").debug("hello from the test")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    for handler in root.handlers:
        handler.flush()
    assert "hello from the test" in log_file.read_text()


def test_unwritable_log_file_falls_back_to_stderr(env, hotplug, monkeypatch, tmp_path):
    # A directory cannot be opened as a log file
    monkeypatch.setenv("NETBUF_LOG_FILE", str(tmp_path))

    code = main(["teardown", "--vifname", "vif3.0", "--xenbus-path", claim_path(3),
                 "--ifb", "ifb0"], hotplug=hotplug)

    assert code == EXIT_OK
    root = logging.getLogger()
    assert not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
