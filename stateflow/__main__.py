"""Command-line administration for stateflow.

    python -m stateflow init-db
    python -m stateflow provision-tenant <tenant>
    python -m stateflow list-tenants
    python -m stateflow export-logs [--tenant T] [--machine-id N] [--entity-type E] [--output FILE]
"""

import argparse
import sys
from typing import List, Optional

from stateflow.core.audit import AuditLogStore, AuditQuery, TenantProvisioner, write_csv
from stateflow.core.config import get_settings
from stateflow.core.definitions import SqlDefinitionStore, load_definitions
from stateflow.core.errors import StateflowError
from stateflow.core.logger import setup_logger
from stateflow.db.session import create_db_engine, create_session_factory, init_db


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m stateflow")
    parser.add_argument("--database-url", help="Override the configured database URL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the shared schema without migrations")

    provision = commands.add_parser("provision-tenant", help="Create a tenant's audit log")
    provision.add_argument("tenant")

    commands.add_parser("list-tenants", help="List provisioned tenants")

    export = commands.add_parser("export-logs", help="Export audit logs as CSV")
    export.add_argument("--tenant")
    export.add_argument("--machine-id", type=int)
    export.add_argument("--entity-type")
    export.add_argument("--output", help="Write to this file instead of stdout")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the stateflow CLI."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logger = setup_logger(
        "stateflow",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.file_logging,
    )

    engine = create_db_engine(args.database_url or settings.database_url)

    try:
        if args.command == "init-db":
            init_db(engine)
            print("Shared schema created")

        elif args.command == "provision-tenant":
            try:
                created = TenantProvisioner(engine).provision(args.tenant)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 2
            print(f"Provisioned tenant {args.tenant}" if created else f"Tenant {args.tenant} already provisioned")

        elif args.command == "list-tenants":
            for tenant in TenantProvisioner(engine).list_tenants():
                print(tenant)

        elif args.command == "export-logs":
            if settings.definitions_file:
                definitions = load_definitions(settings.definitions_file)
            else:
                definitions = SqlDefinitionStore(create_session_factory(engine))
            entries = AuditLogStore(engine).list_entries(
                AuditQuery(machine_id=args.machine_id, entity_type=args.entity_type),
                tenant=args.tenant,
                limit=settings.export_limit,
            )
            if args.output:
                with open(args.output, "w", newline="") as f:
                    count = write_csv(entries, definitions, f)
                logger.info(f"Exported {count} entries to {args.output}")
            else:
                write_csv(entries, definitions, sys.stdout)

    except StateflowError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
