import argparse
import sys
from pathlib import Path

from . import archive_pipeline, media
from .config import resolve_config
from .log import setup_logging


def _load_config(args):
    cli_dict = {k: v for k, v in vars(args).items() if v is not None}
    config_path = Path(args.config) if getattr(args, "config", None) else None
    config = resolve_config(cli_dict, config_path=config_path)
    setup_logging(config.logging.level, config.logging.file)
    return config


def _add_common_options(parser):
    parser.add_argument("--config", "-c", type=str, help="YAML file layered over the defaults")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Override log level"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="interview-archiver", description="Interview Recording Archiver"
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # UPLOAD
    upload_parser = subparsers.add_parser(
        "upload", help="Compress, upload and transcribe one recording"
    )
    upload_parser.add_argument("file", type=str, help="Recording to archive")
    upload_parser.add_argument("interview_id", type=int, help="Interview id in the record store")
    upload_parser.add_argument(
        "--compressed-storage", type=str, help="Directory for compressed copies and transcripts"
    )
    upload_parser.add_argument("--drive-folder-id", type=str, help="Google Drive folder id")
    upload_parser.add_argument(
        "--force-compress", action="store_true", default=None, help="Re-encode even if efficient"
    )
    upload_parser.add_argument(
        "--no-youtube", action="store_true", default=None, help="Skip the YouTube backup"
    )
    upload_parser.add_argument(
        "--no-transcribe", action="store_true", default=None, help="Skip transcription"
    )
    upload_parser.add_argument("--retry-delay", type=float, help="Seconds between upload attempts")
    _add_common_options(upload_parser)

    # SERVE
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    _add_common_options(serve_parser)

    # SWEEP
    sweep_parser = subparsers.add_parser("sweep", help="Delete originals past their retention")
    _add_common_options(sweep_parser)

    # PLAN
    plan_parser = subparsers.add_parser("plan", help="Show the compression decision for a file")
    plan_parser.add_argument("file", type=str, help="Recording to inspect")
    plan_parser.add_argument("--force-compress", action="store_true", default=None)

    # CHECK FFMPEG
    check_parser = subparsers.add_parser("check", help="Verify ffmpeg and the record store")
    _add_common_options(check_parser)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "upload":
        config = _load_config(args)
        # Originals past retention are reclaimed on every run, as the API does at startup
        removed = archive_pipeline.run_deletion_sweep(config)
        if removed:
            print(f"Removed {len(removed)} scheduled deletion(s).")
        results, jobs = archive_pipeline.run_archive(config, [(args.file, args.interview_id)])

        for result in results:
            if not result.success:
                print(f"❌ {result.error}")
                sys.exit(1)

        job = jobs[0]
        print("\n" + "=" * 60)
        print("UPLOAD SUMMARY")
        print("=" * 60)
        print(f"File:                 {job.final_file_name}")
        print(f"Status:               {job.status.value}")
        print(f"Google Drive:         {job.primary_link or 'N/A'}")
        print(f"YouTube:              {job.backup_link or 'N/A'}")
        print(f"Transcript:           {job.transcript_link or 'N/A'}")
        if job.error:
            print(f"Error:                {job.error}")
        print("=" * 60)
        if job.error:
            sys.exit(1)

    elif args.command == "serve":
        import uvicorn

        from .api.main import build_app_from_config

        config = _load_config(args)
        uvicorn.run(build_app_from_config(config), host=config.api.host, port=config.api.port)

    elif args.command == "sweep":
        config = _load_config(args)
        removed = archive_pipeline.run_deletion_sweep(config)
        print(f"Removed {len(removed)} scheduled deletion(s).")
        for path in removed:
            print(f"  {path}")

    elif args.command == "plan":
        info, strategy = archive_pipeline.plan_compression(args.file, force=bool(args.force_compress))
        print("\n" + "=" * 60)
        print("COMPRESSION PLAN")
        print("=" * 60)
        print(f"Resolution:           {info.width}x{info.height} @ {info.fps:.2f} fps")
        print(f"Codec:                {info.codec or 'none'}")
        print(f"Size:                 {(info.size or 0) / (1024 * 1024):.1f} MB")
        print(f"Compress:             {'yes' if strategy.should_compress else 'no'}")
        if strategy.should_compress:
            print(f"CRF / preset:         {strategy.crf} / {strategy.preset}")
            print(f"Audio:                {strategy.audio_bitrate}")
            if strategy.maxrate:
                print(f"Max rate:             {strategy.maxrate} (buf {strategy.bufsize})")
        print(f"Reason:               {strategy.reason}")
        print("=" * 60)

    elif args.command == "check":
        config = _load_config(args)
        print("Checking dependencies...")
        ok = True
        if media.check_ffmpeg():
            print("✅ ffmpeg found.")
        else:
            print("❌ ffmpeg NOT found in PATH.")
            ok = False

        connected = archive_pipeline.check_record_store(config)
        if connected is None:
            print("⚠️  Record store URL not configured.")
        elif connected:
            print("✅ Record store reachable.")
        else:
            print("❌ Record store NOT reachable.")
            ok = False

        if not ok:
            sys.exit(1)

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
