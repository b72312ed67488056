import argparse
import logging

from azure.core.exceptions import HttpResponseError

from kbquery.config import load_settings
from kbquery.connector import connect
from kbquery.errors import AuthError, KbQueryError, is_auth_failure
from kbquery.indexer import provision
from kbquery.menu import prompt_and_dispatch
from kbquery.schema import index_exists
from kbquery.upload import upload_files


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create and query a search index over hotel reviews.",
        epilog="Example: kbquery --settings appsettings.json --upload 'data/*' -v",
    )
    parser.add_argument(
        "--settings",
        help=(
            "Optional. JSON settings file (appsettings.json layout); "
            "environment variables and options override it"
        ),
    )
    parser.add_argument(
        "--searchservice",
        help="Name of the Azure Cognitive Search service (must exist already)",
    )
    parser.add_argument(
        "--searchkey",
        help=(
            "Optional. Use this Azure Cognitive Search admin key "
            "instead of the current user identity"
        ),
    )
    parser.add_argument("--index", help="Name of the index to create or query")
    parser.add_argument("--storageaccount", help="Azure Blob Storage account name")
    parser.add_argument("--container", help="Azure Blob Storage container name")
    parser.add_argument(
        "--connection_string", help="Connection string from Azure Storage Account"
    )
    parser.add_argument(
        "--cognitivekey", help="Cognitive Services key billed for the built-in skills"
    )
    parser.add_argument(
        "--upload",
        metavar="GLOB",
        help="Optional. Upload files matching this pattern to the container first",
    )
    parser.add_argument(
        "--overwrite_files",
        action="store_true",
        help="Overwrite blobs that already exist when uploading",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        logging.getLogger("azure").setLevel(logging.WARNING)


def run(settings, read=input, out=print, service=None) -> None:
    # First, connect to the search service
    service = service or connect(settings)
    try:
        if not index_exists(service, settings.index_name):
            provision(service, settings, out=out)
            out("Complete.\n")
        else:
            prompt_and_dispatch(service, settings, read=read, out=out)
    except HttpResponseError as e:
        if not is_auth_failure(e):
            raise
        raise AuthError(f"Search service rejected the credential: {e.message}") from e


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    overrides = {
        "search_service_name": args.searchservice,
        "search_admin_key": args.searchkey,
        "index_name": args.index,
        "blob_storage_account_name": args.storageaccount,
        "container_name": args.container,
        "blob_connection_string": args.connection_string,
        "cognitive_services_key": args.cognitivekey,
    }
    try:
        settings = load_settings(args.settings, overrides)
        if args.upload:
            upload_files(settings, args.upload, overwrite=args.overwrite_files)
        run(settings)
    except KbQueryError as e:
        logging.error("%s", e)
        return 1
    return 0
