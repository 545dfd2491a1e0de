"""Unit tests for identity and job schemas."""
import pytest
from pydantic import ValidationError
from actrunner.core.enums import JobOutcome, StepStatus
from actrunner.schemas.identity import RunnerIdentity, normalize_labels
from actrunner.schemas.job import JobAssignment, JobResult, Step, StepOutcome
from tests.factories.job_factory import make_result


class TestLabels:
    """Tests for label normalization."""

    def test_normalize_csv_string(self):
        """Test CSV labels are split, trimmed and lower-cased."""
        assert normalize_labels(" Linux, RISCV64 ,,self-hosted") == {
            "linux",
            "riscv64",
            "self-hosted",
        }

    def test_normalize_iterable(self):
        """Test iterables drop blanks and duplicates."""
        assert normalize_labels(["GPU", "gpu", " ", ""]) == {"gpu"}

    def test_normalize_none(self):
        """Test None yields no labels."""
        assert normalize_labels(None) == frozenset()


class TestRunnerIdentity:
    """Tests for RunnerIdentity."""

    def _identity(self, **overrides):
        data = dict(id="r1", name="n", labels="b,a", credential="s3cret", url="http://c")
        data.update(overrides)
        return RunnerIdentity(**data)

    def test_identity_is_immutable(self):
        """Test identity fields cannot be reassigned."""
        identity = self._identity()

        with pytest.raises(ValidationError):
            identity.credential = "other"

    def test_labels_serialize_sorted(self):
        """Test labels are written as a sorted list."""
        assert self._identity().model_dump()["labels"] == ["a", "b"]

    def test_json_round_trip_preserves_identity(self):
        """Test an identity survives serialization unchanged."""
        identity = self._identity()

        assert RunnerIdentity.model_validate_json(identity.model_dump_json()) == identity

    def test_repr_hides_credential(self):
        """Test the credential never appears in repr/str."""
        identity = self._identity()

        assert "s3cret" not in repr(identity)
        assert "s3cret" not in str(identity)

    def test_empty_credential_rejected(self):
        """Test a credential is required."""
        with pytest.raises(ValidationError):
            self._identity(credential="")


class TestJobAssignment:
    """Tests for JobAssignment and Step."""

    def test_parse_controller_payload(self):
        """Test a controller JSON payload parses into steps in order."""
        assignment = JobAssignment.model_validate(
            {
                "job_id": "build-1",
                "labels": ["RISCV64"],
                "env": {"CI": "true"},
                "steps": [
                    {"command": "echo a", "timeout": 5},
                    {"name": "build", "command": "make", "working_directory": "src"},
                ],
            }
        )

        assert assignment.labels == {"riscv64"}
        assert [s.display_name for s in assignment.steps] == ["echo a", "build"]
        assert assignment.steps[1].working_directory == "src"
        assert assignment.steps[1].continue_on_error is False

    def test_step_timeout_must_be_positive(self):
        """Test zero or negative timeouts are rejected."""
        with pytest.raises(ValidationError):
            Step(command="true", timeout=0)

    def test_step_requires_command(self):
        """Test an empty command is rejected."""
        with pytest.raises(ValidationError):
            Step(command="")


class TestJobResult:
    """Tests for JobResult outcome rules."""

    def test_all_steps_succeeded(self):
        """Test outcome is SUCCEEDED when every step succeeded."""
        result = make_result("j", StepStatus.SUCCEEDED, StepStatus.SUCCEEDED)

        assert result.outcome == JobOutcome.SUCCEEDED
        assert result.completed_at is not None

    def test_failed_step_fails_job(self):
        """Test a failed step makes the job FAILED."""
        result = make_result("j", StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)

        assert result.outcome == JobOutcome.FAILED

    def test_timed_out_step_fails_job(self):
        """Test a timed-out step makes the job FAILED."""
        result = make_result("j", StepStatus.SUCCEEDED, StepStatus.TIMED_OUT)

        assert result.outcome == JobOutcome.FAILED

    def test_continue_on_error_failure_does_not_fail_job(self):
        """Test failures of continue-on-error steps are tolerated."""
        result = JobResult(job_id="j")
        result.add(StepOutcome(index=0, name="lint", status=StepStatus.FAILED, continue_on_error=True))
        result.add(StepOutcome(index=1, name="build", status=StepStatus.SUCCEEDED))

        assert result.finalize() == JobOutcome.SUCCEEDED

    def test_forced_cancellation(self):
        """Test finalize(cancelled=True) overrides step outcomes."""
        result = make_result("j", StepStatus.SUCCEEDED, finalize=False)

        assert result.finalize(cancelled=True) == JobOutcome.CANCELLED

    def test_runner_error_fails_job(self):
        """Test a runner-side error forces FAILED and is kept."""
        result = JobResult(job_id="j")

        assert result.finalize(error="PermissionError: work dir") == JobOutcome.FAILED
        assert result.error == "PermissionError: work dir"

    def test_finalize_only_once(self):
        """Test a result cannot be finalized twice."""
        result = make_result("j", StepStatus.SUCCEEDED)

        with pytest.raises(RuntimeError):
            result.finalize()

    def test_add_after_finalize_rejected(self):
        """Test outcomes cannot be added to a final result."""
        result = make_result("j", StepStatus.SUCCEEDED)

        with pytest.raises(RuntimeError):
            result.add(StepOutcome(index=1, name="late", status=StepStatus.SUCCEEDED))
