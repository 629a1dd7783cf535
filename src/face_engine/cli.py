"""CLI entry point for the face recognition engine.

Usage:
    face-engine run [--camera N] [--no-display] [--json]
    face-engine register NAME [--attempts N]
    face-engine list [--json]
    face-engine delete NAME
    face-engine activate NAME / deactivate NAME
    face-engine stats
    face-engine audit [--limit N]
"""

import argparse
import json
import logging
import sys
import time

from .constants import get_config

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure root logging from the logging settings."""
    settings = get_config().logging
    level = logging.DEBUG if debug else getattr(logging, settings.level, logging.INFO)

    handlers = [logging.StreamHandler()]
    if settings.file:
        handlers.append(logging.FileHandler(settings.file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def open_store():
    """Open the embedding store configured in config.yaml."""
    from .storage import EmbeddingStore

    settings = get_config().database
    return EmbeddingStore(settings.path, settings=settings)


def build_engine(camera_device=None):
    """Wire camera, detector, recognizer and store into an engine."""
    from .detection import FaceDetector
    from .engine import FaceRecognitionEngine
    from .recognition import FaceRecognizer
    from .sensors import Camera

    config = get_config()
    camera_settings = config.camera
    if camera_device is not None:
        camera_settings.device = camera_device

    camera = Camera(settings=camera_settings)
    detector = FaceDetector(backend=config.detection.backend, settings=config.detection)
    recognizer = FaceRecognizer(settings=config.recognition)
    store = open_store()

    return FaceRecognitionEngine(camera, detector, recognizer, store, settings=config.engine), store


def cmd_run(args):
    """Run live recognition."""
    from .exceptions import CameraError

    engine, store = build_engine(args.camera)

    def log_event(event):
        if not event.face_detected:
            return
        if args.json:
            print(json.dumps(event.to_dict()), flush=True)
        else:
            logger.info(f"{event.identity} ({event.confidence:.2f})")

    engine.subscribe(log_event)

    try:
        engine.start()
    except CameraError as e:
        logger.error(f"Cannot start: {e}")
        store.close()
        sys.exit(1)

    logger.info("Recognition running. Press 'q' (or Ctrl+C) to quit.")

    try:
        if args.no_display:
            while engine.is_running():
                time.sleep(0.5)
        else:
            import cv2

            while engine.is_running():
                frame = engine.get_latest_frame()
                if frame is not None:
                    cv2.imshow("Face Recognition", frame)
                if cv2.waitKey(30) & 0xFF == ord("q"):
                    break
            cv2.destroyAllWindows()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        engine.stop()
        last_event = engine.get_latest_event()
        if last_event is not None:
            logger.info(f"Last event: {last_event.to_dict()}")
        logger.info(f"Stats: {engine.get_stats()}")
        store.close()


def cmd_register(args):
    """Register an identity from the camera."""
    engine, store = build_engine(args.camera)

    try:
        for attempt in range(1, args.attempts + 1):
            if engine.register_identity(args.name):
                print(f"Registered {args.name}")
                return
            logger.info(f"Attempt {attempt}/{args.attempts} failed, retrying...")
            time.sleep(args.delay)

        print(f"Could not register {args.name}: no face detected")
        sys.exit(1)
    finally:
        store.close()


def cmd_list(args):
    """List enrolled identities."""
    store = open_store()
    try:
        names = store.list_identities()
        if args.json:
            print(json.dumps([store.get_identity(name).to_dict() for name in names], indent=2))
            return
        if not names:
            print("No identities enrolled")
            return

        print(f"{'Name':<30} {'Samples':>8} {'Seen':>6}  Last recognized")
        for name in names:
            record = store.get_identity(name)
            print(
                f"{record.name:<30} {record.embedding_count:>8} "
                f"{record.recognition_count:>6}  {record.last_recognized or '-'}"
            )
    finally:
        store.close()


def cmd_delete(args):
    """Delete an identity and its embeddings."""
    store = open_store()
    try:
        if store.delete_identity(args.name):
            print(f"Deleted {args.name}")
        else:
            print(f"Identity not found or delete failed: {args.name}")
            sys.exit(1)
    finally:
        store.close()


def cmd_set_active(args):
    """Activate or deactivate an identity."""
    store = open_store()
    active = args.command == "activate"
    try:
        if store.set_identity_active(args.name, active):
            print(f"{'Activated' if active else 'Deactivated'} {args.name}")
        else:
            print(f"Identity not found: {args.name}")
            sys.exit(1)
    finally:
        store.close()


def cmd_stats(args):
    """Show database statistics."""
    store = open_store()
    try:
        stats = store.get_stats()
        print(f"Identities: {stats['identity_count']} ({stats['active_identity_count']} active)")
        print(f"Embeddings: {stats['embedding_count']}")
        if stats["unreadable_embedding_count"]:
            print(f"Unreadable embeddings: {stats['unreadable_embedding_count']}")
        print(f"Encryption: {'on' if store.encryption_enabled else 'off'}")
        print(f"Schema version: {store.schema_version}")
    finally:
        store.close()


def cmd_audit(args):
    """Show recent audit log entries."""
    store = open_store()
    try:
        for entry in store.get_audit_log(limit=args.limit):
            values = entry.new_values if entry.new_values is not None else entry.old_values
            print(
                f"{entry.timestamp}  {entry.operation:<6} {entry.table_name:<16} "
                f"#{entry.record_id}  {entry.user_info}  {values}"
            )
    finally:
        store.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="face-engine",
        description="Real-time face recognition engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  face-engine register "Alice"       Enroll Alice from the camera
  face-engine run                    Live recognition window
  face-engine run --no-display       Log recognitions only
  face-engine list                   Show enrolled identities
        """,
    )

    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")
    parser.add_argument("-c", "--config", help="Config file")
    parser.add_argument("-d", "--debug", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_p = subparsers.add_parser("run", help="Live recognition")
    run_p.add_argument("--camera", help="Camera device index or URL")
    run_p.add_argument("--no-display", action="store_true", help="Do not open a window")
    run_p.add_argument("--json", action="store_true", help="Print events as JSON lines")

    # register
    reg_p = subparsers.add_parser("register", help="Enroll an identity from the camera")
    reg_p.add_argument("name", help="Identity name")
    reg_p.add_argument("--camera", help="Camera device index or URL")
    reg_p.add_argument("-n", "--attempts", type=int, default=5, help="Capture attempts")
    reg_p.add_argument("--delay", type=float, default=1.0, help="Seconds between attempts")

    list_p = subparsers.add_parser("list", help="List identities")
    list_p.add_argument("--json", action="store_true", help="Print identities as JSON")

    delete_p = subparsers.add_parser("delete", help="Delete an identity")
    delete_p.add_argument("name", help="Identity name")

    activate_p = subparsers.add_parser("activate", help="Re-enable an identity")
    activate_p.add_argument("name", help="Identity name")

    deactivate_p = subparsers.add_parser("deactivate", help="Disable an identity")
    deactivate_p.add_argument("name", help="Identity name")

    subparsers.add_parser("stats", help="Database statistics")

    audit_p = subparsers.add_parser("audit", help="Recent audit log entries")
    audit_p.add_argument("-l", "--limit", type=int, default=20, help="Entries to show")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.config:
        get_config().reload(args.config)
    setup_logging(args.debug)

    commands = {
        "run": cmd_run,
        "register": cmd_register,
        "list": cmd_list,
        "delete": cmd_delete,
        "activate": cmd_set_active,
        "deactivate": cmd_set_active,
        "stats": cmd_stats,
        "audit": cmd_audit,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
