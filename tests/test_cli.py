import pytest
from click.testing import CliRunner

from app import cli as cli_module
from app.services.config import FailurePolicy

from tests.conftest import FakeIamService


@pytest.fixture
def patch_workflow(monkeypatch, make_workflow):
    built = {}

    def _patch(iam: FakeIamService):
        def _build(*, aws_config, config, notifier):
            built["config"] = config
            built["notifier"] = notifier
            workflow, _, _ = make_workflow(iam, config=config, notifier=notifier)
            return workflow

        monkeypatch.setattr(cli_module, "build_provisioning_workflow", _build)
        return built

    return _patch


class TestCli:
    def test_run_succeeds(self, patch_workflow):
        patch_workflow(FakeIamService())
        result = CliRunner().invoke(cli_module.cli, ["run", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Creating the group..." in result.output
        assert "Bucket name: amzn-s3-demo-bucket" in result.output
        assert "Run outcome: succeeded" in result.output

    def test_overrides_reach_the_workflow(self, patch_workflow):
        built = patch_workflow(FakeIamService())
        result = CliRunner().invoke(
            cli_module.cli,
            ["run", "--yes", "--user-name", "auditor", "--on-duplicate-user", "abort"],
        )

        assert result.exit_code == 0, result.output
        assert built["config"].user_name == "auditor"
        assert built["config"].on_duplicate_user == FailurePolicy.ABORT

    def test_pause_waits_for_enter(self, patch_workflow):
        built = patch_workflow(FakeIamService())
        result = CliRunner().invoke(cli_module.cli, ["run"], input="\n")

        assert result.exit_code == 0, result.output
        assert built["notifier"]._pause is True

    def test_aborted_run_exits_non_zero(self, patch_workflow):
        patch_workflow(FakeIamService(existing_groups=("S3ReadonlyGroup",)))
        result = CliRunner().invoke(cli_module.cli, ["run", "--yes"])

        assert result.exit_code == 1
        assert "Run outcome: aborted" in result.output

    def test_bad_config_is_a_usage_error(self, monkeypatch, patch_workflow):
        patch_workflow(FakeIamService())
        monkeypatch.setenv("PROVISIONING_ON_KEY_QUOTA", "sometimes")
        result = CliRunner().invoke(cli_module.cli, ["run", "--yes"])

        assert result.exit_code == 2
        assert "PROVISIONING_ON_KEY_QUOTA" in result.output

    def test_adopted_user_is_flagged_in_cleanup(self, patch_workflow):
        patch_workflow(FakeIamService(existing_users=("S3ReadOnlyUser",)))
        result = CliRunner().invoke(cli_module.cli, ["run", "--yes"])

        assert result.exit_code == 0, result.output
        assert "user S3ReadOnlyUser: deleted [pre-existing]" in result.output
        assert "group S3ReadonlyGroup: deleted\n" in result.output
