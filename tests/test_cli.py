from unittest.mock import MagicMock, patch

import pytest

from interview_archiver.cli import main
from interview_archiver.compression_policy import CompressionStrategy
from interview_archiver.media import MediaInfo
from interview_archiver.queue import AddVideoResult, Job, JobStatus


def make_job(**overrides):
    data = {
        "id": "job-1",
        "original_file_path": "/recordings/call.mp4",
        "original_file_name": "call.mp4",
        "interview_id": 5,
        "candidate_name": "Jane Doe",
        "company": "Acme",
        "interview_type": "Technical",
        "interview_date": "2024-03-15",
        "final_file_name": "Jane_Doe_Acme_Technical_2024-03-15.mp4",
        "status": JobStatus.COMPLETED,
        "primary_link": "https://drive.google.com/file/d/abc/view",
    }
    data.update(overrides)
    return Job(**data)


@pytest.fixture(autouse=True)
def offline():
    """Keep commands away from the real state directory and record store."""
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.archive_pipeline.run_deletion_sweep",
                  return_value=[]) as sweep, \
            patch("interview_archiver.archive_pipeline.check_record_store",
                  return_value=None) as check:
        yield {"sweep": sweep, "check": check}


def test_cli_help_displays():
    """Test --help works without errors."""
    with patch("sys.argv", ["interview-archiver", "--help"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0


def test_cli_upload_help():
    """Test upload subcommand help."""
    with pytest.raises(SystemExit) as exc_info:
        main(["upload", "--help"])
    assert exc_info.value.code == 0


def test_cli_upload_requires_interview_id():
    with pytest.raises(SystemExit) as exc_info:
        main(["upload", "call.mp4"])
    assert exc_info.value.code == 2


def test_cli_check_command_ffmpeg_found(capsys):
    """Test check command when ffmpeg is found."""
    with patch("interview_archiver.media.check_ffmpeg", return_value=True):
        main(["check"])
        captured = capsys.readouterr()
        assert "ffmpeg found" in captured.out.lower()


def test_cli_check_command_ffmpeg_not_found(capsys):
    """Test check command when ffmpeg is not found."""
    with patch("interview_archiver.media.check_ffmpeg", return_value=False):
        with pytest.raises(SystemExit) as exc_info:
            main(["check"])
        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "not found" in captured.out.lower()


def test_cli_no_command_shows_help(capsys):
    """Test running with no command shows help."""
    main([])
    captured = capsys.readouterr()
    assert "usage:" in captured.out.lower()


def test_cli_upload_prints_summary(capsys):
    job = make_job()
    result = AddVideoResult(success=True, item=job)
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.archive_pipeline.run_archive",
                  return_value=([result], [job])) as run_archive:
        main(["upload", "call.mp4", "5", "--compressed-storage", "/data", "--no-youtube"])

    config, items = run_archive.call_args[0]
    assert items == [("call.mp4", 5)]
    assert config.storage.compressed_storage == "/data"
    assert config.google.youtube_enabled is False

    out = capsys.readouterr().out
    assert "UPLOAD SUMMARY" in out
    assert "https://drive.google.com/file/d/abc/view" in out
    assert "completed" in out


def test_cli_upload_rejected_exits_nonzero(capsys):
    result = AddVideoResult(success=False, error="Interview 5 not found")
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.archive_pipeline.run_archive", return_value=([result], [])):
        with pytest.raises(SystemExit) as exc_info:
            main(["upload", "call.mp4", "5"])

    assert exc_info.value.code == 1
    assert "Interview 5 not found" in capsys.readouterr().out


def test_cli_upload_failed_job_exits_nonzero(capsys):
    job = make_job(status=JobStatus.FAILED, error="YouTube upload failed: quota", primary_link=None)
    result = AddVideoResult(success=True, item=job)
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.archive_pipeline.run_archive", return_value=([result], [job])):
        with pytest.raises(SystemExit) as exc_info:
            main(["upload", "call.mp4", "5"])

    assert exc_info.value.code == 1
    assert "YouTube upload failed: quota" in capsys.readouterr().out


def test_cli_plan_prints_strategy(capsys):
    info = MediaInfo(width=1920, height=1080, fps=30.0, codec="mpeg4", size=900 * 1024 * 1024)
    strategy = CompressionStrategy(crf=22, preset="slow", audio_bitrate="192k",
                                   maxrate="8M", bufsize="16M",
                                   reason="Large file - quality-focused compression")
    with patch("interview_archiver.archive_pipeline.plan_compression",
               return_value=(info, strategy)) as plan:
        main(["plan", "call.mp4"])

    plan.assert_called_once_with("call.mp4", force=False)
    out = capsys.readouterr().out
    assert "COMPRESSION PLAN" in out
    assert "1920x1080" in out
    assert "22 / slow" in out
    assert "8M (buf 16M)" in out
    assert "quality-focused" in out


def test_cli_sweep(capsys):
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.archive_pipeline.run_deletion_sweep",
                  return_value=["/recordings/old.mp4"]) as sweep:
        main(["sweep"])

    sweep.assert_called_once()
    out = capsys.readouterr().out
    assert "Removed 1 scheduled deletion(s)." in out
    assert "/recordings/old.mp4" in out


def test_cli_serve_uses_configured_address():
    with patch("interview_archiver.cli.setup_logging"), \
            patch("interview_archiver.api.main.build_app_from_config",
                  return_value=MagicMock()) as build, \
            patch("uvicorn.run") as run:
        main(["serve", "--host", "0.0.0.0", "--port", "9001"])

    build.assert_called_once()
    assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 9001}


def test_cli_check_reports_record_store(capsys, offline):
    offline["check"].return_value = True
    with patch("interview_archiver.media.check_ffmpeg", return_value=True):
        main(["check"])

    assert "Record store reachable" in capsys.readouterr().out


def test_cli_check_unreachable_record_store_exits_nonzero(capsys, offline):
    offline["check"].return_value = False
    with patch("interview_archiver.media.check_ffmpeg", return_value=True):
        with pytest.raises(SystemExit) as exc_info:
            main(["check"])

    assert exc_info.value.code == 1
    assert "Record store NOT reachable" in capsys.readouterr().out


def test_cli_check_without_record_store_url(capsys):
    with patch("interview_archiver.media.check_ffmpeg", return_value=True):
        main(["check"])

    assert "Record store URL not configured" in capsys.readouterr().out


def test_cli_upload_sweeps_before_archiving(capsys, offline):
    order = []
    offline["sweep"].side_effect = lambda config: order.append("sweep") or ["/recordings/old.mp4"]
    job = make_job()

    def archive(config, items):
        order.append("archive")
        return [AddVideoResult(success=True, item=job)], [job]

    with patch("interview_archiver.archive_pipeline.run_archive", side_effect=archive):
        main(["upload", "call.mp4", "5"])

    assert order == ["sweep", "archive"]
    assert "Removed 1 scheduled deletion(s)." in capsys.readouterr().out
