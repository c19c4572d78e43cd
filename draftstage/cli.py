"""Command line maintenance tool for the local stores."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import StorageConfig, load_config_from_yaml, write_example_config
from .service import StagingService
from .storage import NotFoundError, StorageError

logger = logging.getLogger(__name__)


def _load_config(path: Optional[str]) -> StorageConfig:
    if path:
        return load_config_from_yaml(Path(path))
    return StorageConfig()


async def _run(args: argparse.Namespace) -> int:
    service = StagingService(_load_config(args.config))
    await service.start()
    try:
        if args.command == "sweep":
            result = await service.sweep()
        elif args.command == "stats":
            result = await service.stats()
        elif args.command == "drafts":
            result = []
            for job_id in await service.record_store.list_known_keys():
                record = await service.record_store.get_record(job_id)
                result.append({
                    "job_id": job_id,
                    "saved_at": record.timestamp.isoformat() if record else None,
                })
        elif args.command == "files":
            if args.attribute:
                records = await service.blob_store.list_for_job_and_attribute(args.job, args.attribute)
            else:
                records = await service.blob_store.list_for_job(args.job)
            result = [
                {
                    "id": r.id,
                    "attribute_id": r.attribute_id,
                    "name": r.name,
                    "mime_type": r.mime_type,
                    "size_bytes": r.size_bytes,
                    "timestamp": r.timestamp.isoformat(),
                }
                for r in records
            ]
        elif args.command == "export":
            result = {"path": str(await service.blob_store.export(args.file_id, args.dest))}
        else:
            raise ValueError(f"Unknown command: {args.command}")
    finally:
        await service.stop()

    print(json.dumps(result, indent=2, default=str))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run the maintenance CLI."""
    parser = argparse.ArgumentParser(description="draftstage local store maintenance")
    parser.add_argument("--config", help="Path to a YAML storage configuration")
    parser.add_argument("--log-level", default="warning", help="Log level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("sweep", help="Evict expired drafts and staged files")
    sub.add_parser("stats", help="Show what is stored locally")
    sub.add_parser("drafts", help="List saved drafts")

    files = sub.add_parser("files", help="List staged files for a job")
    files.add_argument("--job", required=True, help="Job id")
    files.add_argument("--attribute", help="Only files for this attribute id")

    export = sub.add_parser("export", help="Write a staged file to disk")
    export.add_argument("file_id")
    export.add_argument("dest")

    init = sub.add_parser("init-config", help="Write an example configuration file")
    init.add_argument("path")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "init-config":
        write_example_config(Path(args.path))
        return 0

    try:
        return asyncio.run(_run(args))
    except NotFoundError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except StorageError as e:
        logger.error(f"Local storage unavailable: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
