import pytest

from gaterunner.context import ExecutionContext
from gaterunner.errors import ProvisionError
from gaterunner.model import ToolchainSpec
from gaterunner.provisioner import RustupProvisioner, validate_spec

from conftest import FakeCommandRunner


@pytest.fixture
def context(tmp_path):
    return ExecutionContext(job="fmt", workdir=tmp_path)


def test_provision_installs_channel_and_components(context):
    runner = FakeCommandRunner()
    RustupProvisioner(runner).provision(ToolchainSpec("nightly", ("rustfmt",)), context)

    assert runner.calls_for("fmt") == [
        ("rustup", "toolchain", "install", "nightly", "--profile", "minimal"),
        ("rustup", "component", "add", "rustfmt", "--toolchain", "nightly"),
    ]
    assert context.env["RUSTUP_TOOLCHAIN"] == "nightly"


def test_provision_without_components_skips_component_add(context):
    runner = FakeCommandRunner()
    RustupProvisioner(runner).provision(ToolchainSpec("stable"), context)
    assert runner.calls_for("fmt") == [("rustup", "toolchain", "install", "stable", "--profile", "minimal")]


def test_provision_is_idempotent_per_context(context):
    runner = FakeCommandRunner()
    provisioner = RustupProvisioner(runner)
    spec = ToolchainSpec("stable", ("clippy",))

    provisioner.provision(spec, context)
    provisioner.provision(ToolchainSpec("stable", ["clippy"]), context)

    assert len(runner.calls_for("fmt")) == 2  # install + component add, once
    assert context.env["RUSTUP_TOOLCHAIN"] == "stable"


def test_new_context_provisions_again(tmp_path):
    runner = FakeCommandRunner()
    provisioner = RustupProvisioner(runner)
    spec = ToolchainSpec("stable")

    provisioner.provision(spec, ExecutionContext(job="a", workdir=tmp_path))
    provisioner.provision(spec, ExecutionContext(job="b", workdir=tmp_path))

    assert len(runner.calls_for("a")) == 1
    assert len(runner.calls_for("b")) == 1


def test_switching_channel_reselects_active_toolchain(context):
    provisioner = RustupProvisioner(FakeCommandRunner())
    provisioner.provision(ToolchainSpec("nightly"), context)
    provisioner.provision(ToolchainSpec("stable"), context)
    assert context.env["RUSTUP_TOOLCHAIN"] == "stable"
    provisioner.provision(ToolchainSpec("nightly"), context)
    assert context.env["RUSTUP_TOOLCHAIN"] == "nightly"


def test_unknown_channel_fails_without_running_anything(context):
    runner = FakeCommandRunner()
    with pytest.raises(ProvisionError) as exc:
        RustupProvisioner(runner).provision(ToolchainSpec("nightly-invalid"), context)
    assert exc.value.kind == "ProvisionError"
    assert runner.calls == []
    assert "RUSTUP_TOOLCHAIN" not in context.env


def test_install_failure_is_a_provision_error(context):
    runner = FakeCommandRunner({"rustup toolchain install": 1})
    with pytest.raises(ProvisionError) as exc:
        RustupProvisioner(runner).provision(ToolchainSpec("stable", ("clippy",)), context)
    assert "exit=1" in exc.value.message
    # component add never attempted after the install failed
    assert len(runner.calls) == 1
    assert ToolchainSpec("stable", ("clippy",)) not in context.provisioned


def test_missing_rustup_is_a_provision_error(context):
    runner = FakeCommandRunner({"rustup": 127})
    with pytest.raises(ProvisionError) as exc:
        RustupProvisioner(runner).provision(ToolchainSpec("stable"), context)
    assert "hint" in exc.value.details


def test_unsupported_toolchain_name(context):
    with pytest.raises(ProvisionError):
        RustupProvisioner(FakeCommandRunner()).provision(ToolchainSpec("3.12", name="python"), context)


@pytest.mark.parametrize("channel", ["stable", "beta", "nightly", "nightly-2024-01-31", "1.75", "1.75.0"])
def test_valid_channels(channel):
    validate_spec(ToolchainSpec(channel))


@pytest.mark.parametrize("channel", ["nightly-invalid", "", "latest", "1", "stable-"])
def test_invalid_channels(channel):
    with pytest.raises(ProvisionError):
        validate_spec(ToolchainSpec(channel))


def test_invalid_component_name():
    with pytest.raises(ProvisionError):
        validate_spec(ToolchainSpec("stable", ("rust fmt",)))
