from hostbackup.data_structures import ArtifactOutcome, BackupSummary, CommandResult, RestoreSummary, failures


def test_command_result_ok() -> None:
    assert CommandResult(0).ok
    assert not CommandResult(1, stderr="boom").ok


def test_artifact_outcome_failed_always_carries_a_reason() -> None:
    assert ArtifactOutcome.succeeded("data").ok
    assert ArtifactOutcome.failed("data", "").error == "unknown error"
    assert not ArtifactOutcome.failed("data", "no space left", "data.tar.gz").ok


def test_failures() -> None:
    outcomes = [ArtifactOutcome.succeeded("a"), ArtifactOutcome.failed("b", "boom"), ArtifactOutcome.succeeded("c")]

    assert [outcome.item for outcome in failures(outcomes)] == ["b"]


def test_backup_summary_counts() -> None:
    summary = BackupSummary(host="maple", backup_dir="/mnt/backups/maple/20240131_174502", timestamp="20240131_174502")
    summary.volumes = ["a", "b", "c"]
    summary.volume_outcomes = [
        ArtifactOutcome.succeeded("a", "a.tar.gz"),
        ArtifactOutcome.failed("b", "boom", "b.tar.gz"),
        ArtifactOutcome.succeeded("c", "c.tar.gz"),
    ]
    summary.bind_mount_outcomes = [ArtifactOutcome.failed("nginx:/srv/nginx", "Permission denied")]
    summary.restart_outcomes = [ArtifactOutcome.failed("nginx", "cannot start")]

    assert summary.volumes_found == 3
    assert summary.volumes_backed_up == 2
    # restart problems are reported separately
    assert [outcome.item for outcome in summary.failed_artifacts] == ["b", "nginx:/srv/nginx"]


def test_restore_summary_counts() -> None:
    summary = RestoreSummary(host="maple", backup_dir="/mnt/backups/maple/20240131_174502")
    summary.restore_outcomes = [ArtifactOutcome.succeeded("cache"), ArtifactOutcome.failed("db", "tar: invalid magic")]

    assert summary.restored == ["cache"]
    assert [outcome.item for outcome in summary.failed_artifacts] == ["db"]
