#!/usr/bin/env python3
"""CaseSheets - legal case and evidence store on Google Sheets."""

import argparse
import asyncio
import sys
from datetime import datetime

from casesheets import CaseSheets, Settings, configure_logging, __version__
from models import Case
from storage import InstalledAppProvider, Success, match_result


def describe_failure(result) -> str:
    """User-facing message for a failed result."""
    return match_result(
        result,
        on_success=lambda _: "",
        on_error=lambda exc: f"Error: {exc}",
        on_recoverable=lambda exc: (
            f"Authorization required: {exc}\n"
            "Run with --auth (CASESHEETS_AUTH=oauth) or check the service account key."
        ),
    )


def format_time(epoch_ms: int) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M")


async def find_case(app: CaseSheets, name: str):
    """Registered case by name; prints and returns None if missing or failed."""
    result = await app.cases.find_by_name(name)
    if not isinstance(result, Success):
        print(describe_failure(result))
        return None
    if result.value is None:
        print(f"Error: no case named '{name}'")
    return result.value


async def run(args: argparse.Namespace, app: CaseSheets) -> int:
    """Execute the requested command. Returns the process exit code."""
    if args.bootstrap:
        result = await app.resolver.resolve()
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        print(f"Root folder:     {result.value.root_folder_id}")
        print(f"Case registry:   {result.value.registry_spreadsheet_id}")
        return 0

    if args.list_cases:
        result = await app.cases.list(prefer_cache=args.offline)
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        cases = [c for c in result.value if args.all or not c.is_archived]
        if not cases:
            print("No cases.")
        for case in cases:
            flag = " [archived]" if case.is_archived else ""
            print(f"{case.name}{flag}  (modified {format_time(case.last_modified)}, "
                  f"spreadsheet {case.spreadsheet_id})")
        return 0

    if args.create_case:
        result = await app.cases.create(Case(name=args.create_case))
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        print(f"Created case '{result.value.name}' (spreadsheet {result.value.spreadsheet_id})")
        return 0

    if args.import_spreadsheet:
        result = await app.importer.import_spreadsheet(args.import_spreadsheet)
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        print(f"Imported case '{result.value.name}' (spreadsheet {result.value.spreadsheet_id})")
        return 0

    if args.archive_case or args.delete_case:
        case = await find_case(app, args.archive_case or args.delete_case)
        if case is None:
            return 1
        if args.archive_case:
            result = await app.cases.archive(case)
            done = f"Archived case '{case.name}'"
        else:
            result = await app.cases.delete(case, trash_files=args.trash)
            done = f"Deleted case '{case.name}'" + (" and trashed its files" if args.trash else "")
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        print(done)
        return 0

    if args.upload_evidence:
        case_name, path = args.upload_evidence
        case = await find_case(app, case_name)
        if case is None:
            return 1
        result = await app.cases.upload_evidence_file(case, path)
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        print(f"Uploaded '{result.value.name}' to case '{case.name}' (file {result.value.id})")
        return 0

    if args.list_evidence:
        case = await find_case(app, args.list_evidence)
        if case is None:
            return 1
        result = await app.evidence.list(case, prefer_cache=args.offline)
        if not isinstance(result, Success):
            print(describe_failure(result))
            return 1
        if not result.value:
            print("No evidence.")
        for item in result.value:
            tags = f"  [{', '.join(item.tags)}]" if item.tags else ""
            print(f"{format_time(item.timestamp)}  {item.content}{tags}")
        return 0

    print("Nothing to do. See --help.")
    return 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Legal case and evidence store on Google Sheets")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--auth", action="store_true",
                       help="Authorize access to Google Drive (CASESHEETS_AUTH=oauth)")
    parser.add_argument("--bootstrap", action="store_true",
                       help="Create or find the root folder and case registry")
    parser.add_argument("--list-cases", action="store_true",
                       help="List registered cases, most recently modified first")
    parser.add_argument("--all", action="store_true",
                       help="Include archived cases (use with --list-cases)")
    parser.add_argument("--create-case", type=str, metavar="NAME",
                       help="Create a new case")
    parser.add_argument("--archive-case", type=str, metavar="NAME",
                       help="Archive a case")
    parser.add_argument("--delete-case", type=str, metavar="NAME",
                       help="Remove a case from the registry")
    parser.add_argument("--trash", action="store_true",
                       help="Also trash the case folder (use with --delete-case)")
    parser.add_argument("--list-evidence", type=str, metavar="CASE",
                       help="List the evidence of a case")
    parser.add_argument("--upload-evidence", nargs=2, metavar=("CASE", "PATH"),
                       help="Upload a file into the Evidence folder of a case")
    parser.add_argument("--import", dest="import_spreadsheet", type=str, metavar="SPREADSHEET_ID",
                       help="Import an external spreadsheet as a new case")
    parser.add_argument("--offline", action="store_true",
                       help="Answer listings from the local cache when possible")
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    # Handle --auth first (doesn't need the registry)
    if args.auth:
        if settings.auth != "oauth":
            print("Error: --auth needs CASESHEETS_AUTH=oauth")
            return 1
        InstalledAppProvider(settings.client_secrets_file, settings.token_file).authorize()
        print(f"Authorization stored in {settings.token_file}")
        return 0

    try:
        app = CaseSheets.from_settings(settings)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    try:
        return asyncio.run(run(args, app))
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
